"""Tests for settings, model persistence, pacing presets and cancel tokens."""

import threading
from pathlib import Path

import pytest

from pod2read.cancel import CancelToken
from pod2read.config import DEFAULT_OLLAMA_HOST, Settings
from pod2read.errors import (
    ABORTED,
    NO_MODELS_INSTALLED,
    Cancelled,
    GenerationFailed,
    NoModelsInstalled,
    user_message,
)
from pod2read.model_selection import parse_param_size, pick_best_model, resolve_model
from pod2read.model_store import JsonModelStore
from pod2read.models import ArcProfile, ModelInfo
from pod2read.pacing import next_speed, prev_speed, speed_label


# ----------------------------
# Settings
# ----------------------------

def test_settings_defaults(monkeypatch):
    for name in ("OLLAMA_HOST", "POD2READ_MODEL", "POD2READ_WPM", "POD2READ_STATE_DIR"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env(dotenv=False)
    assert settings.ollama_host == DEFAULT_OLLAMA_HOST
    assert settings.model is None
    assert settings.wpm == 250
    assert settings.health_timeout == 3.0


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("OLLAMA_HOST", "127.0.0.1:11500/")
    monkeypatch.setenv("POD2READ_MODEL", "llama3")
    monkeypatch.setenv("POD2READ_WPM", "300")
    monkeypatch.setenv("POD2READ_STATE_DIR", str(tmp_path))
    settings = Settings.from_env(dotenv=False)
    assert settings.ollama_host == "http://127.0.0.1:11500"
    assert settings.model == "llama3"
    assert settings.wpm == 300
    assert settings.model_store_path == Path(tmp_path) / "model.json"


def test_settings_reject_bad_numbers(monkeypatch):
    monkeypatch.setenv("POD2READ_REQUEST_TIMEOUT", "soon")
    with pytest.raises(ValueError):
        Settings.from_env(dotenv=False)


# ----------------------------
# Model store / selection
# ----------------------------

def test_json_model_store_round_trip(tmp_path):
    store = JsonModelStore(tmp_path / "state" / "model.json")
    assert store.load() is None
    store.save("qwen2.5:7b")
    assert JsonModelStore(tmp_path / "state" / "model.json").load() == "qwen2.5:7b"


def test_json_model_store_ignores_garbage(tmp_path):
    path = tmp_path / "model.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonModelStore(path).load() is None


@pytest.mark.parametrize(
    "label,expected",
    [("7.6B", 7.6), ("350M", 0.35), ("8b", 8.0), ("", 0.0), ("unknown", 0.0), (None, 0.0)],
)
def test_parse_param_size(label, expected):
    assert parse_param_size(label) == pytest.approx(expected)


def test_pick_best_model_empty():
    assert pick_best_model([]) is None


def test_pick_best_model_prefers_largest_under_limit():
    models = [
        ModelInfo(name="llama3.2:3b", param_size="3.2B"),
        ModelInfo(name="qwen2.5:7b", param_size="7.6B"),
        ModelInfo(name="llama3:70b", param_size="70B"),
    ]
    assert pick_best_model(models).name == "qwen2.5:7b"
    assert pick_best_model(models[2:]).name == "llama3:70b"


def test_pick_best_model_with_unknown_sizes():
    models = [ModelInfo(name="mystery"), ModelInfo(name="small", param_size="1.5B")]
    assert pick_best_model(models).name == "small"


def test_resolve_model():
    installed = ["llama3:latest", "qwen2.5:7b"]
    assert resolve_model("qwen2.5:7b", installed) == "qwen2.5:7b"
    assert resolve_model("llama3", installed) == "llama3:latest"
    assert resolve_model("llama", installed) is None


# ----------------------------
# Pacing / errors
# ----------------------------

def test_speed_presets():
    assert next_speed(250) == 300
    assert next_speed(600) == 600
    assert prev_speed(150) == 150
    assert prev_speed(400) == 300
    assert next_speed(275) == 250
    assert speed_label(150) == "Relaxed"
    assert speed_label(250) == "Normal"
    assert speed_label(400) == "Fast"
    assert speed_label(600) == "Speed"


def test_user_messages():
    assert user_message(ABORTED) == ""
    assert "ollama pull" in user_message(NO_MODELS_INSTALLED)
    assert NoModelsInstalled("x").code == NO_MODELS_INSTALLED


def test_arc_profile_accepts_percentages():
    profile = ArcProfile.model_validate(
        {
            "arc_shape": "fall",
            "staging_end_pct": 10,
            "tension_start_pct": 30,
            "climax_zone_start_pct": 50,
            "climax_zone_end_pct": 70,
            "resolution_start_pct": 0.9,
        }
    )
    assert profile.breakpoints() == pytest.approx([0.1, 0.3, 0.5, 0.7, 0.9])


def test_arc_profile_rejects_unordered_breakpoints():
    with pytest.raises(ValueError):
        ArcProfile.model_validate(
            {
                "arc_shape": "rise",
                "staging_end_pct": 0.5,
                "tension_start_pct": 0.3,
                "climax_zone_start_pct": 0.6,
                "climax_zone_end_pct": 0.8,
                "resolution_start_pct": 0.9,
            }
        )


# ----------------------------
# Cancel tokens
# ----------------------------

def test_cancel_runs_callbacks_once():
    token = CancelToken()
    calls = []
    token.add_callback(lambda: calls.append(1))
    token.cancel()
    token.cancel()
    assert calls == [1]
    with pytest.raises(Cancelled):
        token.raise_if_cancelled()


def test_callback_on_cancelled_token_runs_immediately():
    token = CancelToken()
    token.cancel()
    calls = []
    token.add_callback(lambda: calls.append(1))
    assert calls == [1]


def test_unregistered_callback_does_not_run():
    token = CancelToken()
    calls = []
    unregister = token.add_callback(lambda: calls.append(1))
    unregister()
    token.cancel()
    assert calls == []


def test_linked_token_follows_parent():
    parent = CancelToken()
    with CancelToken.linked(parent) as child:
        parent.cancel()
        assert child.cancelled
        with pytest.raises(Cancelled):
            child.raise_if_cancelled()


def test_linked_token_times_out_as_failure():
    with CancelToken.linked(timeout=0.01) as child:
        assert child.wait(5)
        with pytest.raises(GenerationFailed) as info:
            child.raise_if_cancelled()
    assert not isinstance(info.value, Cancelled)


def test_closed_link_ignores_parent():
    parent = CancelToken()
    child = CancelToken.linked(parent)
    child.close()
    parent.cancel()
    assert not child.cancelled


def test_cancel_from_another_thread():
    token = CancelToken()
    threading.Timer(0.01, token.cancel).start()
    assert token.wait(5)
