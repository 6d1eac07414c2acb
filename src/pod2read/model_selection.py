"""Choosing which installed model to run."""

from __future__ import annotations

import re
from typing import List, Optional

from .models import ModelInfo

MAX_AUTO_PARAMS_B = 9.0

_PARAM_SIZE_RE = re.compile(r"([\d.]+)\s*([BMK])", flags=re.IGNORECASE)
_UNIT_TO_BILLIONS = {"B": 1.0, "M": 1e-3, "K": 1e-6}


def parse_param_size(label: Optional[str]) -> float:
    """
    Convert a parameter-count label such as ``"7.6B"`` or ``"350M"`` to billions.

    Unrecognised labels count as 0.
    """
    if not label:
        return 0.0
    match = _PARAM_SIZE_RE.search(label)
    if not match:
        return 0.0
    try:
        number = float(match.group(1))
    except ValueError:
        return 0.0
    return number * _UNIT_TO_BILLIONS[match.group(2).upper()]


def pick_best_model(models: List[ModelInfo], max_params_b: float = MAX_AUTO_PARAMS_B) -> Optional[ModelInfo]:
    """
    Largest model with at most ``max_params_b`` billion parameters.

    Falls back to the smallest model when every model is larger.
    """
    if not models:
        return None
    ranked = sorted(models, key=lambda m: parse_param_size(m.param_size))
    fitting = [m for m in ranked if parse_param_size(m.param_size) <= max_params_b]
    return fitting[-1] if fitting else ranked[0]


def resolve_model(name: str, installed: List[str]) -> Optional[str]:
    """Match ``name`` exactly or as an untagged prefix (``llama3`` -> ``llama3:latest``)."""
    for candidate in installed:
        if candidate == name or candidate.startswith(f"{name}:"):
            return candidate
    return None
