"""
Request builders for the generation backend.

Pure functions: they assemble ``GenerationRequest`` values from text and
metadata and never perform I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .chunk import TokenCounter, simple_token_count
from .models import ArcProfile, VideoContext
from .prompts import (
    ARC_ANALYSIS_SYSTEM_MESSAGE,
    ARC_CONTEXT_HEADER,
    ARC_CONTEXT_TEMPLATE,
    ARC_PHASE_GUIDANCE,
    CHAPTER_SYSTEM_MESSAGE,
    CHAPTER_TITLE_PREAMBLE,
    RESTRUCTURE_SYSTEM_MESSAGE,
    TRANSCRIPT_HEADER,
    VIDEO_CONTEXT_HEADER,
)

MAX_KEYWORDS = 15
MAX_DESCRIPTION_CHARS = 500

OUTPUT_TOKEN_RESERVE = 2048
MIN_CONTEXT_WINDOW = 4096
MAX_CONTEXT_WINDOW = 32768


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    system: str
    format: str = "json"
    context_window: Optional[int] = None

    def to_payload(self, stream: bool) -> Dict[str, Any]:
        """Body for Ollama's ``/api/generate``."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": self.prompt,
            "system": self.system,
            "format": self.format,
            "stream": stream,
        }
        if self.context_window:
            payload["options"] = {"num_ctx": self.context_window}
        return payload


class ArcPhase(str, Enum):
    STAGING = "staging"
    DEVELOPMENT = "development"
    TENSION_BUILDING = "tension_building"
    CLIMAX = "climax"
    RESOLUTION = "resolution"

    @property
    def label(self) -> str:
        return self.value.replace("_", "-").upper()


def estimate_context_window(system: str, prompt: str, count_tokens: TokenCounter = simple_token_count) -> int:
    """
    Smallest power of two holding system + prompt tokens plus room for the answer.

    ``count_tokens`` is loaded once by the caller (see ``chunk.load_token_counter``).
    """
    needed = count_tokens(system) + count_tokens(prompt) + OUTPUT_TOKEN_RESERVE
    window = MIN_CONTEXT_WINDOW
    while window < needed and window < MAX_CONTEXT_WINDOW:
        window *= 2
    return window


def format_video_context(video_context: VideoContext) -> Optional[str]:
    """The ``[VIDEO CONTEXT]`` block, or None when there is nothing to say."""
    parts = [VIDEO_CONTEXT_HEADER]
    if video_context.title:
        parts.append(f"Title: {video_context.title}")
    if video_context.category:
        parts.append(f"Category: {video_context.category}")
    if video_context.keywords:
        parts.append(f"Keywords: {', '.join(video_context.keywords[:MAX_KEYWORDS])}")
    if video_context.description:
        parts.append(f"Description: {video_context.description[:MAX_DESCRIPTION_CHARS]}")
    if len(parts) == 1:
        return None
    return "\n".join(parts)


def _compose_prompt(text: str, video_context: Optional[VideoContext], arc_context: Optional[str]) -> str:
    blocks = []
    if arc_context:
        blocks.append(arc_context)
    video_block = format_video_context(video_context) if video_context is not None else None
    if video_block:
        blocks.append(video_block)
    if not blocks:
        return text
    return "\n\n".join(blocks) + f"\n\n{TRANSCRIPT_HEADER}\n{text}"


# ----------------------------
# Request kinds
# ----------------------------

def build_restructure_request(
    text: str,
    model: str,
    video_context: Optional[VideoContext] = None,
    arc_context: Optional[str] = None,
    count_tokens: TokenCounter = simple_token_count,
) -> GenerationRequest:
    """Request restructuring a whole transcript (or one chunk) into sections + takeaways."""
    prompt = _compose_prompt(text, video_context, arc_context)
    return GenerationRequest(
        model=model,
        prompt=prompt,
        system=RESTRUCTURE_SYSTEM_MESSAGE,
        context_window=estimate_context_window(RESTRUCTURE_SYSTEM_MESSAGE, prompt, count_tokens),
    )


def build_chapter_request(
    title: str,
    text: str,
    model: str,
    arc_context: Optional[str] = None,
    count_tokens: TokenCounter = simple_token_count,
) -> GenerationRequest:
    """Request restructuring one chapter (or sub-chunk of one) into thoughts + recap."""
    system = f"{CHAPTER_TITLE_PREAMBLE.format(title=title)}\n\n{CHAPTER_SYSTEM_MESSAGE}"
    prompt = _compose_prompt(text, None, arc_context)
    return GenerationRequest(
        model=model,
        prompt=prompt,
        system=system,
        context_window=estimate_context_window(system, prompt, count_tokens),
    )


def build_arc_analysis_request(
    condensed_text: str,
    model: str,
    count_tokens: TokenCounter = simple_token_count,
) -> GenerationRequest:
    return GenerationRequest(
        model=model,
        prompt=condensed_text,
        system=ARC_ANALYSIS_SYSTEM_MESSAGE,
        context_window=estimate_context_window(ARC_ANALYSIS_SYSTEM_MESSAGE, condensed_text, count_tokens),
    )


# ----------------------------
# Arc context
# ----------------------------

def arc_phase(profile: ArcProfile, start_pct: float, end_pct: float) -> ArcPhase:
    """
    Narrative phase of the span ``[start_pct, end_pct)``, judged at its midpoint.

    Thresholds are compared in order; everything past the climax zone is
    resolution.
    """
    mid = (start_pct + end_pct) / 2
    if mid < profile.staging_end_pct:
        return ArcPhase.STAGING
    if mid < profile.tension_start_pct:
        return ArcPhase.DEVELOPMENT
    if mid < profile.climax_zone_start_pct:
        return ArcPhase.TENSION_BUILDING
    if mid < profile.climax_zone_end_pct:
        return ArcPhase.CLIMAX
    return ArcPhase.RESOLUTION


def build_arc_context(profile: ArcProfile, start_pct: float, end_pct: float) -> str:
    """
    Directive telling the model where this excerpt sits in the overall arc.

    Injected verbatim into the excerpt's request so independently generated
    chunks agree on narrative pacing.
    """
    phase = arc_phase(profile, start_pct, end_pct)
    return ARC_CONTEXT_TEMPLATE.format(
        header=ARC_CONTEXT_HEADER,
        start=start_pct,
        end=end_pct,
        shape=profile.arc_shape.value,
        phase_label=phase.label,
        staging_end=profile.staging_end_pct,
        tension_start=profile.tension_start_pct,
        climax_start=profile.climax_zone_start_pct,
        climax_end=profile.climax_zone_end_pct,
        resolution_start=profile.resolution_start_pct,
        guidance=ARC_PHASE_GUIDANCE[phase.value],
    )
