"""Runtime settings, read from the environment (and ``.env`` via python-dotenv)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_WPM = 250


def _normalize_host(raw: str) -> str:
    host = raw.strip().rstrip("/")
    if not host.startswith(("http://", "https://")):
        host = f"http://{host}"
    return host


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    ollama_host: str = DEFAULT_OLLAMA_HOST
    model: Optional[str] = None
    wpm: int = DEFAULT_WPM
    request_timeout: float = 120.0
    health_timeout: float = 3.0
    state_dir: Path = field(default_factory=lambda: Path("~/.pod2read").expanduser())

    @property
    def model_store_path(self) -> Path:
        return self.state_dir / "model.json"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win)
        """
        if dotenv:
            load_dotenv()
        return cls(
            ollama_host=_normalize_host(os.getenv("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST),
            model=os.getenv("POD2READ_MODEL") or None,
            wpm=int(_env_float("POD2READ_WPM", DEFAULT_WPM)),
            request_timeout=_env_float("POD2READ_REQUEST_TIMEOUT", 120.0),
            health_timeout=_env_float("POD2READ_HEALTH_TIMEOUT", 3.0),
            state_dir=Path(os.getenv("POD2READ_STATE_DIR") or "~/.pod2read").expanduser(),
        )
