"""Persistence of the last-selected model between pipeline runs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class ModelStore(Protocol):
    def load(self) -> Optional[str]: ...

    def save(self, model: str) -> None: ...


class MemoryModelStore:
    def __init__(self, model: Optional[str] = None):
        self.model = model

    def load(self) -> Optional[str]:
        return self.model

    def save(self, model: str) -> None:
        self.model = model


class JsonModelStore:
    """Stores ``{"model": "<name>"}`` in a small JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable model store %s: %s", self.path, e)
            return None
        model = data.get("model") if isinstance(data, dict) else None
        return model if isinstance(model, str) and model else None

    def save(self, model: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"model": model}), encoding="utf-8")
