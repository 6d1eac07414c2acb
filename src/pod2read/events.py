"""
Typed publish/subscribe for playback events.

Delivery is synchronous and in emission order on the caller's thread;
listeners run in subscription order and must not block.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .models import Section, Thought


class TimelineEvent(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    THOUGHT_CHANGE = "thoughtChange"
    SECTION_CHANGE = "sectionChange"
    SECTION_END = "sectionEnd"
    TICK = "tick"
    END = "end"
    RATE_CHANGE = "rateChange"


@dataclass(frozen=True)
class ThoughtChange:
    index: int
    prev_index: int
    thought: Thought


@dataclass(frozen=True)
class SectionChange:
    section_index: int
    section: Section


@dataclass(frozen=True)
class SectionEnd:
    section_index: int
    section: Section


@dataclass(frozen=True)
class Tick:
    time: float
    index: int
    thought: Optional[Thought]
    progress: float
    total_progress: float


@dataclass(frozen=True)
class RateChange:
    rate: float


Listener = Callable[[Any], None]


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: Dict[TimelineEvent, List[Listener]] = {}

    def on(self, event: TimelineEvent, listener: Listener) -> None:
        self._listeners.setdefault(TimelineEvent(event), []).append(listener)

    def off(self, event: TimelineEvent, listener: Listener) -> None:
        listeners = self._listeners.get(TimelineEvent(event))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: TimelineEvent, payload: Any = None) -> None:
        # Copy so a listener may unsubscribe while being notified
        for listener in list(self._listeners.get(event, ())):
            listener(payload)

    def clear(self) -> None:
        self._listeners.clear()
