"""
Playback scheduler and state machine.

The schedule is a pure function of the flattened thoughts and the reading
speed. The Timeline owns it exclusively: rebuilding replaces it whole,
consumers only read it through events and accessors.
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .config import DEFAULT_WPM
from .events import (
    EventEmitter,
    Listener,
    RateChange,
    SectionChange,
    SectionEnd,
    ThoughtChange,
    Tick,
    TimelineEvent,
)
from .models import Document, Energy, Section, Thought

BREATHE_PAUSE_MS = 2500
MIN_DISPLAY_MS = 1200
MIN_RECAP_MS = 2000
PUNCTUATION_BONUS_MS = 200

MIN_RATE = 0.25
MAX_RATE = 4.0

ENERGY_MULTIPLIERS = {
    Energy.CLIMAX: 1.4,
    Energy.EMOTIONAL: 1.3,
    Energy.BUILDING_TENSION: 0.9,
    Energy.ENUMERATION: 0.85,
}

_SENTENCE_END_RE = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class TimelineThought:
    """A thought plus its position within the document's sections."""

    thought: Thought
    section_index: int
    section_title: str
    section_recap: str
    is_first_in_section: bool
    is_last_in_section: bool


@dataclass(frozen=True)
class ScheduledThought:
    index: int
    start_ms: float
    end_ms: float
    display_ms: float
    breathe_pause_ms: float
    recap_pause_ms: float


@dataclass(frozen=True)
class VideoSavings:
    video_duration: float
    reading_time: float
    saved_seconds: float


class TimelineState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


# ----------------------------
# Schedule construction
# ----------------------------

def flatten_document(document: Document) -> List[TimelineThought]:
    flat = []
    for si, section in enumerate(document.sections):
        last = len(section.thoughts) - 1
        for ti, thought in enumerate(section.thoughts):
            flat.append(
                TimelineThought(
                    thought=thought,
                    section_index=si,
                    section_title=section.title,
                    section_recap=section.recap,
                    is_first_in_section=ti == 0,
                    is_last_in_section=ti == last,
                )
            )
    return flat


def reading_ms(words: int, wpm: float) -> float:
    return words / wpm * 60000


def display_duration_ms(thought: Thought, wpm: float) -> float:
    """On-screen time for a thought: reading time scaled by complexity and energy, floored at 1.2 s."""
    base_ms = reading_ms(len(thought.text.split()), wpm)
    complexity_multiplier = 1 + (thought.complexity - 0.5) * 0.4
    energy_multiplier = ENERGY_MULTIPLIERS.get(thought.energy, 1.0)
    sentences = len(_SENTENCE_END_RE.findall(thought.text))
    punctuation_bonus = max(0, sentences - 1) * PUNCTUATION_BONUS_MS
    return max(MIN_DISPLAY_MS, base_ms * complexity_multiplier * energy_multiplier + punctuation_bonus)


def build_schedule(thoughts: Sequence[TimelineThought], wpm: float) -> Tuple[List[ScheduledThought], float]:
    """
    Lay thoughts end to end.

    A section-opening thought (other than the first) starts after a breathe
    pause; a section-closing thought with a recap reserves a recap pause
    after its display time, covered by its ``end_ms``.

    Returns:
        (schedule, total_duration_ms)
    """
    schedule = []
    clock = 0.0
    for i, item in enumerate(thoughts):
        display_ms = display_duration_ms(item.thought, wpm)
        breathe_ms = BREATHE_PAUSE_MS if item.is_first_in_section and i > 0 else 0
        recap_ms = 0.0
        if item.is_last_in_section and item.section_recap:
            recap_ms = max(MIN_RECAP_MS, reading_ms(len(item.section_recap.split()), wpm)) + BREATHE_PAUSE_MS

        start = clock + breathe_ms
        end = start + display_ms + recap_ms
        schedule.append(
            ScheduledThought(
                index=i,
                start_ms=start,
                end_ms=end,
                display_ms=display_ms,
                breathe_pause_ms=breathe_ms,
                recap_pause_ms=recap_ms,
            )
        )
        clock = end
    return schedule, clock


# ----------------------------
# Playback
# ----------------------------

class Timeline:
    """
    Play/pause/seek state machine over a schedule.

    ``tick()`` is the frame callback: hosts with their own frame loop call
    it every frame, others can use ``run()``. All events are delivered
    synchronously from the calling thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._events = EventEmitter()
        self._sections: List[Section] = []
        self._thoughts: List[TimelineThought] = []
        self._schedule: Tuple[ScheduledThought, ...] = ()
        self._total_duration = 0.0
        self._current_index = 0
        self._current_time = 0.0
        self._wpm: float = DEFAULT_WPM
        self._rate = 1.0
        self._playing = False
        self._state = TimelineState.IDLE
        self._last_frame = 0.0
        self._section_end_emitted_index = -1

    # ----------------------------
    # Accessors
    # ----------------------------

    @property
    def thoughts(self) -> Tuple[TimelineThought, ...]:
        return tuple(self._thoughts)

    @property
    def sections(self) -> Tuple[Section, ...]:
        return tuple(self._sections)

    @property
    def schedule(self) -> Tuple[ScheduledThought, ...]:
        return self._schedule

    @property
    def total_duration(self) -> float:
        return self._total_duration

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def wpm(self) -> float:
        return self._wpm

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def state(self) -> TimelineState:
        return self._state

    def current_thought(self) -> Optional[TimelineThought]:
        if 0 <= self._current_index < len(self._thoughts):
            return self._thoughts[self._current_index]
        return None

    # ----------------------------
    # Loading
    # ----------------------------

    def load(self, document: Document, wpm: Optional[float] = None) -> None:
        with self._lock:
            self._playing = False
            self._wpm = wpm or DEFAULT_WPM
            self._sections = list(document.sections)
            self._thoughts = flatten_document(document)
            self._rebuild()
            self._current_index = 0
            self._current_time = 0.0
            self._section_end_emitted_index = -1
            self._state = TimelineState.IDLE

    def _rebuild(self) -> None:
        schedule, total = build_schedule(self._thoughts, self._wpm)
        self._schedule = tuple(schedule)
        self._total_duration = total

    # ----------------------------
    # Transport
    # ----------------------------

    def play(self) -> None:
        with self._lock:
            if self._playing or not self._thoughts:
                return
            if self._state == TimelineState.ENDED:
                self.seek_to_index(0)
            self._playing = True
            self._state = TimelineState.PLAYING
            self._last_frame = self._clock()
            self._events.emit(TimelineEvent.PLAY)
            self.tick(self._last_frame)

    def pause(self) -> None:
        with self._lock:
            if not self._playing:
                return
            self._playing = False
            self._state = TimelineState.PAUSED
            self._events.emit(TimelineEvent.PAUSE)

    def toggle_play(self) -> None:
        with self._lock:
            if self._playing:
                self.pause()
            else:
                self.play()

    def tick(self, now: Optional[float] = None) -> None:
        """Advance the clock by the wall time since the last frame, scaled by rate."""
        with self._lock:
            if not self._playing:
                return
            now = self._clock() if now is None else now
            delta_ms = (now - self._last_frame) * 1000 * self._rate
            self._last_frame = now
            self._current_time = min(self._total_duration, self._current_time + max(0.0, delta_ms))

            # The leaving thought's recap gap is announced before the next section begins
            self._check_section_end()
            new_index = self.get_index_at_time(self._current_time)
            if new_index != self._current_index:
                prev_index = self._current_index
                self._current_index = new_index
                self._section_end_emitted_index = -1
                self._emit_position_change(prev_index)
                self._check_section_end()

            if self._current_time >= self._total_duration:
                self._playing = False
                self._state = TimelineState.ENDED
                self._events.emit(TimelineEvent.END)
                return

            self._emit_tick(self._thought_progress())

    def run(self, frame_interval: float = 1 / 60, sleep: Callable[[float], None] = time.sleep) -> None:
        """Cooperative frame loop; returns once playback is paused or has ended."""
        while self._playing:
            sleep(frame_interval)
            self.tick()

    # ----------------------------
    # Seeking
    # ----------------------------

    def get_index_at_time(self, time_ms: float) -> int:
        for i in range(len(self._schedule) - 1, -1, -1):
            if time_ms >= self._schedule[i].start_ms:
                return i
        return 0

    def seek_to_index(self, index: int) -> None:
        with self._lock:
            if not self._schedule:
                return
            index = max(0, min(index, len(self._schedule) - 1))
            self._seek(index, self._schedule[index].start_ms)

    def seek_to_time(self, time_ms: float) -> None:
        with self._lock:
            if not self._schedule:
                return
            time_ms = max(0.0, min(time_ms, self._total_duration - 1))
            self._seek(self.get_index_at_time(time_ms), time_ms)

    def next(self) -> None:
        with self._lock:
            if self._current_index < len(self._thoughts) - 1:
                self.seek_to_index(self._current_index + 1)

    def prev(self) -> None:
        with self._lock:
            if self._current_index > 0:
                self.seek_to_index(self._current_index - 1)

    def _seek(self, index: int, time_ms: float) -> None:
        prev_index = self._current_index
        self._current_index = index
        self._current_time = time_ms
        self._section_end_emitted_index = -1
        if self._state == TimelineState.ENDED:
            self._state = TimelineState.PAUSED
        # Emitted whether or not playing so paused consumers stay in sync
        self._emit_position_change(prev_index)
        self._emit_tick(0.0)

    # ----------------------------
    # Speed
    # ----------------------------

    def set_wpm(self, wpm: float) -> None:
        """Rebuild the schedule for a new reading speed, staying at the start of the current thought."""
        if wpm <= 0:
            raise ValueError(f"wpm must be positive, got {wpm}")
        with self._lock:
            self._wpm = wpm
            self._rebuild()
            if self._current_index < len(self._schedule):
                self._current_time = self._schedule[self._current_index].start_ms
            self._section_end_emitted_index = -1
            if not self._playing:
                self._emit_tick(0.0)

    def set_rate(self, rate: float) -> None:
        with self._lock:
            self._rate = max(MIN_RATE, min(MAX_RATE, rate))
            self._events.emit(TimelineEvent.RATE_CHANGE, RateChange(rate=self._rate))

    # ----------------------------
    # Derived values
    # ----------------------------

    def get_remaining_time(self) -> float:
        return max(0.0, self._total_duration - self._current_time)

    def get_video_savings(self, duration_seconds: float) -> VideoSavings:
        reading_seconds = self._total_duration / 1000
        return VideoSavings(
            video_duration=duration_seconds,
            reading_time=reading_seconds,
            saved_seconds=max(0.0, duration_seconds - reading_seconds),
        )

    # ----------------------------
    # Events
    # ----------------------------

    def on(self, event: TimelineEvent, listener: Listener) -> None:
        self._events.on(event, listener)

    def off(self, event: TimelineEvent, listener: Listener) -> None:
        self._events.off(event, listener)

    def destroy(self) -> None:
        self.pause()
        self._events.clear()

    def _thought_progress(self) -> float:
        entry = self._schedule[self._current_index]
        if entry.display_ms <= 0:
            return 1.0
        return max(0.0, min(1.0, (self._current_time - entry.start_ms) / entry.display_ms))

    def _check_section_end(self) -> None:
        if not self._thoughts:
            return
        index = self._current_index
        item = self._thoughts[index]
        entry = self._schedule[index]
        if (
            item.is_last_in_section
            and item.section_recap
            and self._current_time >= entry.start_ms + entry.display_ms
            and self._section_end_emitted_index != index
        ):
            self._section_end_emitted_index = index
            self._events.emit(
                TimelineEvent.SECTION_END,
                SectionEnd(section_index=item.section_index, section=self._sections[item.section_index]),
            )

    def _emit_position_change(self, prev_index: int) -> None:
        item = self._thoughts[self._current_index]
        self._events.emit(
            TimelineEvent.THOUGHT_CHANGE,
            ThoughtChange(index=self._current_index, prev_index=prev_index, thought=item.thought),
        )
        if item.section_index != self._thoughts[prev_index].section_index:
            self._events.emit(
                TimelineEvent.SECTION_CHANGE,
                SectionChange(section_index=item.section_index, section=self._sections[item.section_index]),
            )

    def _emit_tick(self, progress: float) -> None:
        item = self.current_thought()
        self._events.emit(
            TimelineEvent.TICK,
            Tick(
                time=self._current_time,
                index=self._current_index,
                thought=item.thought if item else None,
                progress=progress,
                total_progress=self._current_time / self._total_duration if self._total_duration > 0 else 0.0,
            ),
        )
