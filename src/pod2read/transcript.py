"""
Transcript segments: normalization, YouTube json3 parsing and chapter mapping.

Input segments look like::

    {"start": 12.34, "end": 18.90, "text": "...."}   # seconds
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import Chapter

MIN_DESCRIPTION_CHAPTERS = 2

# "0:00 Intro", "1:02:03 - Wrap up", "(12:30) Questions"
_DESCRIPTION_TS_RE = re.compile(
    r"^\s*[\[(]?((?:\d{1,2}:)?\d{1,2}:\d{2})[\])]?\s*[-–—:|]?\s*(.+?)\s*$"
)


@dataclass(frozen=True)
class Segment:
    start: float
    end: float
    text: str
    seg_id: int


@dataclass(frozen=True)
class ChapterMark:
    title: str
    start: float  # seconds


def normalize_segments(raw_segments: List[Dict[str, Any]]) -> List[Segment]:
    segs: List[Segment] = []
    for i, r in enumerate(raw_segments):
        text = (r.get("text") or "").replace("\n", " ").strip()
        if not text:
            continue
        start = float(r["start"])
        end = float(r["end"]) if r.get("end") is not None else start + float(r.get("duration") or 0)
        segs.append(Segment(start=start, end=end, text=text, seg_id=i))
    segs.sort(key=lambda s: (s.start, s.end))
    return segs


def parse_json3(payload: Dict[str, Any]) -> List[Segment]:
    """Parse YouTube's json3 caption format (``events[].segs[].utf8``, times in ms)."""
    segments: List[Segment] = []
    for i, event in enumerate(payload.get("events") or []):
        segs = event.get("segs")
        if not segs:
            continue
        text = "".join(s.get("utf8", "") for s in segs).replace("\n", " ").strip()
        if not text:
            continue
        start_ms = event.get("tStartMs") or 0
        duration_ms = event.get("dDurationMs") or 0
        segments.append(
            Segment(start=start_ms / 1000, end=(start_ms + duration_ms) / 1000, text=text, seg_id=i)
        )
    return segments


def segments_to_plain_text(segments: List[Segment]) -> str:
    return " ".join(s.text for s in segments)


def map_segments_to_chapters(segments: List[Segment], chapters: List[ChapterMark]) -> List[Chapter]:
    """
    Assign each segment to the chapter whose ``[start, next start)`` holds its start time.

    Chapters left without text are dropped.
    """
    if not chapters:
        return []

    ordered = sorted(chapters, key=lambda c: c.start)
    mapped: List[Chapter] = []
    for i, chapter in enumerate(ordered):
        end = ordered[i + 1].start if i < len(ordered) - 1 else math.inf
        text = " ".join(s.text for s in segments if chapter.start <= s.start < end)
        if text.strip():
            mapped.append(Chapter(title=chapter.title, text=text))
    return mapped


def parse_timestamp(value: str) -> float:
    seconds = 0
    for part in value.split(":"):
        seconds = seconds * 60 + int(part)
    return float(seconds)


def parse_description_timestamps(description: Optional[str]) -> List[ChapterMark]:
    """
    Chapter marks written into a video description, one per line.

    Returns an empty list unless at least two marks are found, since a
    single timestamp is usually a reference rather than a chapter list.
    """
    if not description:
        return []
    marks = []
    for line in description.splitlines():
        match = _DESCRIPTION_TS_RE.match(line)
        if match:
            marks.append(ChapterMark(title=match.group(2), start=parse_timestamp(match.group(1))))
    return marks if len(marks) >= MIN_DESCRIPTION_CHAPTERS else []
