"""
Data model for restructured readings.

Backend output is untrusted: ``Document.model_validate`` is the schema
validating decode step. Structural defects (no sections, untitled section,
empty thoughts, thought without text) raise; cosmetic defects (bad enum,
out-of-range complexity, missing recap/emphasis/takeaways) are coerced to
safe defaults.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

from pydantic import BaseModel, Field, field_validator, model_validator


class Mode(str, Enum):
    FLOW = "flow"
    STACK = "stack"
    IMPACT = "impact"


class Energy(str, Enum):
    CALM_INTRO = "calm_intro"
    EXPLANATION = "explanation"
    BUILDING_TENSION = "building_tension"
    CLIMAX = "climax"
    ENUMERATION = "enumeration"
    CONTRAST = "contrast"
    EMOTIONAL = "emotional"
    QUESTION = "question"
    RESOLUTION = "resolution"


class ArcShape(str, Enum):
    RISE = "rise"
    FALL = "fall"
    FALL_THEN_RISE = "fall_then_rise"
    RISE_THEN_FALL = "rise_then_fall"
    UNIFORM = "uniform"


_VALID_MODES = {m.value for m in Mode}
_VALID_ENERGIES = {e.value for e in Energy}
_EMPHASIS_STRIP_RE = re.compile(r"[^\w\s]", flags=re.UNICODE)

MAX_EMPHASIS = 3
DEFAULT_COMPLEXITY = 0.5


def _to_number(value: Any) -> float:
    """Loose numeric coercion: bools count as 0/1, unparseable values are NaN."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return 0.0
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    return math.nan


def coerce_complexity(value: Any) -> float:
    """Return ``value`` if it is a number in [0, 1], else a clamped coercion (0.5 when unusable)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and 0 <= value <= 1:
        return float(value)
    number = _to_number(value)
    if not number or math.isnan(number):
        number = DEFAULT_COMPLEXITY
    return min(1.0, max(0.0, number))


def emphasis_key(word: str) -> str:
    """Lowercased, punctuation-stripped form used to match emphasis against thought text."""
    return _EMPHASIS_STRIP_RE.sub("", word).strip().lower()


class Thought(BaseModel):
    text: str
    emphasis: List[str] = Field(default_factory=list)
    mode: Mode = Mode.FLOW
    energy: Energy = Energy.EXPLANATION
    complexity: float = DEFAULT_COMPLEXITY

    @field_validator("text", mode="before")
    @classmethod
    def _text_required(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("thought text must be a non-empty string")
        return value

    @field_validator("emphasis", mode="before")
    @classmethod
    def _emphasis_keys(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        keys: List[str] = []
        for word in value:
            if not isinstance(word, str):
                continue
            key = emphasis_key(word)
            if key and key not in keys:
                keys.append(key)
        return keys[:MAX_EMPHASIS]

    @field_validator("mode", mode="before")
    @classmethod
    def _mode_or_flow(cls, value: Any) -> str:
        return value if isinstance(value, str) and value in _VALID_MODES else Mode.FLOW.value

    @field_validator("energy", mode="before")
    @classmethod
    def _energy_or_explanation(cls, value: Any) -> str:
        return value if isinstance(value, str) and value in _VALID_ENERGIES else Energy.EXPLANATION.value

    @field_validator("complexity", mode="before")
    @classmethod
    def _complexity(cls, value: Any) -> float:
        return coerce_complexity(value)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class Section(BaseModel):
    title: str
    recap: str = ""
    thoughts: List[Thought] = Field(min_length=1)

    @field_validator("title", mode="before")
    @classmethod
    def _title_required(cls, value: Any) -> str:
        if not isinstance(value, str) or not value:
            raise ValueError("section title must be a non-empty string")
        return value

    @field_validator("recap", mode="before")
    @classmethod
    def _recap_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("thoughts", mode="before")
    @classmethod
    def _thoughts_list(cls, value: Any) -> Any:
        if not isinstance(value, list):
            raise ValueError("section thoughts must be a list")
        return value


class Document(BaseModel):
    sections: List[Section] = Field(min_length=1)
    takeaways: List[str] = Field(default_factory=list)

    @field_validator("sections", mode="before")
    @classmethod
    def _sections_list(cls, value: Any) -> Any:
        if not isinstance(value, list):
            raise ValueError("sections must be a list")
        return value

    @field_validator("takeaways", mode="before")
    @classmethod
    def _takeaways_list(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [t for t in value if isinstance(t, str)]

    def iter_thoughts(self):
        for section in self.sections:
            yield from section.thoughts

    @property
    def thought_count(self) -> int:
        return sum(len(s.thoughts) for s in self.sections)


class ArcProfile(BaseModel):
    """Narrative shape of a whole transcript, as fractions of its length."""

    arc_shape: ArcShape
    staging_end_pct: float = Field(ge=0, le=1)
    tension_start_pct: float = Field(ge=0, le=1)
    climax_zone_start_pct: float = Field(ge=0, le=1)
    climax_zone_end_pct: float = Field(ge=0, le=1)
    resolution_start_pct: float = Field(ge=0, le=1)

    @field_validator(
        "staging_end_pct",
        "tension_start_pct",
        "climax_zone_start_pct",
        "climax_zone_end_pct",
        "resolution_start_pct",
        mode="before",
    )
    @classmethod
    def _percent_to_fraction(cls, value: Any) -> Any:
        # Models sometimes answer 35 instead of 0.35
        if isinstance(value, (int, float)) and not isinstance(value, bool) and 1 < value <= 100:
            return value / 100
        return value

    @model_validator(mode="after")
    def _ordered(self) -> "ArcProfile":
        points = self.breakpoints()
        if any(a > b for a, b in zip(points, points[1:])):
            raise ValueError(f"arc breakpoints must be non-decreasing, got {points}")
        return self

    def breakpoints(self) -> List[float]:
        return [
            self.staging_end_pct,
            self.tension_start_pct,
            self.climax_zone_start_pct,
            self.climax_zone_end_pct,
            self.resolution_start_pct,
        ]


NEUTRAL_ARC = ArcProfile(
    arc_shape=ArcShape.RISE,
    staging_end_pct=0.15,
    tension_start_pct=0.35,
    climax_zone_start_pct=0.6,
    climax_zone_end_pct=0.8,
    resolution_start_pct=0.85,
)


# ----------------------------
# Host-supplied inputs
# ----------------------------

@dataclass
class VideoContext:
    title: str = ""
    category: str = ""
    keywords: List[str] = field(default_factory=list)
    description: str = ""


@dataclass
class Chapter:
    title: str
    text: str


@dataclass
class Progress:
    stage: str
    message: str
    completed: int = 0
    total: int = 0


@dataclass
class ModelInfo:
    """One installed model as reported by the backend listing endpoint."""

    name: str
    param_size: str = ""
    quantization: str = ""
    family: str = ""
    size_bytes: int = 0


@dataclass
class HealthStatus:
    running: bool
    models: List[ModelInfo] = field(default_factory=list)

    @property
    def model_names(self) -> List[str]:
        return [m.name for m in self.models]
