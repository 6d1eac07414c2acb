"""Shared fixtures: a scripted generation backend, a manual clock and sample documents."""

from typing import Any, Callable, Dict, List, Optional

import pytest

from pod2read.chunk import simple_token_count
from pod2read.models import Document, HealthStatus, ModelInfo


class FakeClient:
    """
    Scripted stand-in for OllamaClient.

    ``responses`` are consumed in call order; an exception instance is
    raised instead of returned, a callable is called with the request.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        models: Optional[List[ModelInfo]] = None,
        running: bool = True,
    ):
        self.responses = list(responses or [])
        self.models = models if models is not None else [ModelInfo(name="qwen2.5:7b", param_size="7.6B")]
        self.running = running
        self.requests = []
        self.health_checks = 0

    def check_health(self) -> HealthStatus:
        self.health_checks += 1
        if not self.running:
            return HealthStatus(running=False)
        return HealthStatus(running=True, models=list(self.models))

    def generate(self, request, cancel_token=None, on_token_progress=None) -> Dict[str, Any]:
        self.requests.append(request)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        if not self.responses:
            raise AssertionError(f"Unexpected generation request #{len(self.requests)}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(request)
        if on_token_progress is not None:
            on_token_progress(1)
        return response


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def thought(text: str, energy: str = "explanation", complexity: float = 0.5, **extra) -> Dict[str, Any]:
    data = {"text": text, "emphasis": [], "mode": "flow", "energy": energy, "complexity": complexity}
    data.update(extra)
    return data


def section(title: str, thoughts: List[Dict[str, Any]], recap: str = "") -> Dict[str, Any]:
    return {"title": title, "recap": recap, "thoughts": thoughts}


@pytest.fixture
def make_client() -> Callable[..., FakeClient]:
    return FakeClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def restructure_result() -> Dict[str, Any]:
    return {
        "sections": [
            section(
                "Opening",
                [
                    thought("We start with a question.", "calm_intro"),
                    thought("Why do projects fail?", "question"),
                ],
                recap="Projects fail for simple reasons.",
            ),
            section(
                "Answer",
                [
                    thought("Most failures come from unclear goals.", "building_tension", 0.6),
                    thought("Clear goals change everything.", "climax", 0.9),
                    thought("So write them down.", "resolution"),
                ],
            ),
        ],
        "takeaways": ["Write down goals."],
    }


@pytest.fixture
def sample_document(restructure_result) -> Document:
    return Document.model_validate(restructure_result)


@pytest.fixture(autouse=True)
def offline_token_counter(monkeypatch):
    """Pipelines built in tests never fetch the tiktoken encoding."""
    monkeypatch.setattr("pod2read.pipeline.load_token_counter", lambda: simple_token_count)
