"""
Processing pipeline: transcript in, validated reading document out.

Stages: connecting -> model_check -> arc_analysis (chunked runs only) ->
generating -> validating -> done. Generation calls are strictly
sequential, and every step checks the run's cancel token before starting
new work. Any generation failure aborts the run; there is no retry.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from .cancel import CancelToken
from .chunk import (
    TokenCounter,
    condense_transcript,
    load_token_counter,
    split_chapter_into_sub_chunks,
    split_into_sentence_chunks,
    word_count,
    word_positions,
)
from .errors import (
    BackendUnavailable,
    Cancelled,
    NoModelsInstalled,
    Pod2ReadError,
    RequestedModelUnavailable,
)
from .model_selection import pick_best_model, resolve_model
from .model_store import MemoryModelStore, ModelStore
from .models import NEUTRAL_ARC, ArcProfile, Chapter, Document, HealthStatus, Progress, VideoContext
from .normalize import (
    chapter_takeaways,
    enforce_arc_constraints,
    merge_chapter_results,
    merge_results,
    validate_and_normalize,
)
from .prompt_builder import (
    GenerationRequest,
    build_arc_analysis_request,
    build_arc_context,
    build_chapter_request,
    build_restructure_request,
)

logger = logging.getLogger(__name__)

SINGLE_PASS_MAX_SECONDS = 20 * 60
SINGLE_PASS_WORD_LIMIT = 3500


class Stage(str, Enum):
    CONNECTING = "connecting"
    MODEL_CHECK = "model_check"
    ARC_ANALYSIS = "arc_analysis"
    GENERATING = "generating"
    VALIDATING = "validating"
    DONE = "done"


class GenerationBackend(Protocol):
    def check_health(self) -> HealthStatus: ...

    def generate(
        self,
        request: GenerationRequest,
        cancel_token: Optional[CancelToken] = None,
        on_token_progress: Optional[Callable[[int], None]] = None,
    ) -> Dict[str, Any]: ...


ProgressCallback = Callable[[Progress], None]


def use_single_pass(transcript: str, duration_seconds: Optional[float] = None) -> bool:
    """Short videos (<= 20 min), or short transcripts when duration is unknown, go in one request."""
    if duration_seconds:
        return duration_seconds <= SINGLE_PASS_MAX_SECONDS
    return word_count(transcript) <= SINGLE_PASS_WORD_LIMIT


class ProcessingPipeline:
    """Orchestrates model selection, generation and validation for one host."""

    def __init__(
        self,
        client: GenerationBackend,
        model_store: Optional[ModelStore] = None,
        requested_model: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        count_tokens: Optional[TokenCounter] = None,
    ):
        """
        Args:
            client: Generation backend (normally an OllamaClient)
            model_store: Where the last auto-selected model is remembered
            requested_model: Explicit model pin; fails the run if not installed
            on_progress: Receives a Progress for every stage change and generated token
            count_tokens: Token counter for context-window estimates; loads tiktoken when omitted
        """
        self.client = client
        self.model_store = model_store or MemoryModelStore()
        self.requested_model = requested_model
        self.on_progress = on_progress
        self.count_tokens = count_tokens or load_token_counter()
        self.stage: Optional[Stage] = None
        self.failure: Optional[str] = None

    # ----------------------------
    # Entry points
    # ----------------------------

    def process_transcript(
        self,
        transcript: str,
        duration_seconds: Optional[float] = None,
        video_context: Optional[VideoContext] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Document:
        """
        Restructure a plain transcript in a single pass or in sentence chunks.

        Args:
            transcript: Full plain-text transcript
            duration_seconds: Video length, if known; decides single-pass vs chunked
            video_context: Title/category/keywords/description (first request only)
            cancel_token: Aborts the run from another thread

        Returns:
            Validated, arc-enforced Document
        """
        token = cancel_token or CancelToken()
        return self._run(lambda: self._process_transcript(transcript, duration_seconds, video_context, token))

    def process_with_chapters(self, chapters: List[Chapter], cancel_token: Optional[CancelToken] = None) -> Document:
        """Restructure chapter by chapter; each chapter becomes one section."""
        token = cancel_token or CancelToken()
        return self._run(lambda: self._process_chapters(chapters, token))

    def select_model(self, cancel_token: Optional[CancelToken] = None) -> str:
        """
        Pick the model for this run.

        An explicit pin must be installed. Otherwise the remembered model is
        reused while it is still installed, else the largest model of at
        most 9B parameters is chosen and remembered.
        """
        token = cancel_token or CancelToken()
        self._enter(Stage.CONNECTING, "Connecting to Ollama")
        health = self.client.check_health()
        if not health.running:
            raise BackendUnavailable("Ollama is not running")
        token.raise_if_cancelled()

        self._enter(Stage.MODEL_CHECK, "Checking installed models")
        installed = health.model_names
        if not installed:
            raise NoModelsInstalled("No models are installed")

        if self.requested_model:
            resolved = resolve_model(self.requested_model, installed)
            if resolved is None:
                raise RequestedModelUnavailable(f"Model {self.requested_model!r} is not installed")
            return resolved

        saved = self.model_store.load()
        if saved:
            resolved = resolve_model(saved, installed)
            if resolved is not None:
                logger.info("Using saved model %s", resolved)
                return resolved
            logger.info("Saved model %s is no longer installed; selecting another", saved)

        best = pick_best_model(health.models)
        self.model_store.save(best.name)
        logger.info("Auto-selected model %s (%s)", best.name, best.param_size or "unknown size")
        return best.name

    # ----------------------------
    # Paths
    # ----------------------------

    def _process_transcript(
        self,
        transcript: str,
        duration_seconds: Optional[float],
        video_context: Optional[VideoContext],
        token: CancelToken,
    ) -> Document:
        model = self.select_model(token)
        token.raise_if_cancelled()

        if use_single_pass(transcript, duration_seconds):
            logger.info("Single-pass run (%d words)", word_count(transcript))
            request = build_restructure_request(transcript, model, video_context, count_tokens=self.count_tokens)
            raw = self._generate(request, token, 0, 1, "Restructuring transcript")
            return self._finish(raw, token)

        chunks = split_into_sentence_chunks(transcript)
        logger.info("Chunked run: %d chunks (%d words)", len(chunks), word_count(transcript))
        arc = self.analyze_arc(transcript, model, token)
        positions = word_positions(chunks)

        results = []
        for i, chunk in enumerate(chunks):
            token.raise_if_cancelled()
            arc_context = build_arc_context(arc, *positions[i]) if arc else None
            request = build_restructure_request(
                chunk,
                model,
                video_context=video_context if i == 0 else None,
                arc_context=arc_context,
                count_tokens=self.count_tokens,
            )
            results.append(self._generate(request, token, i, len(chunks), f"Chunk {i + 1} of {len(chunks)}"))

        return self._finish(merge_results(results), token)

    def _process_chapters(self, chapters: List[Chapter], token: CancelToken) -> Document:
        model = self.select_model(token)
        token.raise_if_cancelled()

        chapter_chunks = [split_chapter_into_sub_chunks(ch.text) for ch in chapters]
        total = sum(len(chunks) for chunks in chapter_chunks)
        logger.info("Chapter run: %d chapters, %d requests", len(chapters), total)

        sections = []
        completed = 0
        for i, (chapter, chunks) in enumerate(zip(chapters, chapter_chunks)):
            title = chapter.title or f"Chapter {i + 1}"
            # Chapters already impose structure, so their position stands in for arc analysis
            arc_context = build_arc_context(NEUTRAL_ARC, i / len(chapters), (i + 1) / len(chapters))
            results = []
            for chunk in chunks:
                token.raise_if_cancelled()
                request = build_chapter_request(title, chunk, model, arc_context, self.count_tokens)
                results.append(self._generate(request, token, completed, total, f"Chapter: {title}"))
                completed += 1

            section = merge_chapter_results(title, results)
            if not section["thoughts"]:
                logger.warning("Chapter %r produced no thoughts; dropping it", title)
                continue
            sections.append(section)

        return self._finish({"sections": sections, "takeaways": []}, token, recap_takeaways=True)

    # ----------------------------
    # Steps
    # ----------------------------

    def analyze_arc(self, transcript: str, model: str, token: CancelToken) -> Optional[ArcProfile]:
        """
        One arc-analysis call over a condensed transcript.

        Failure is not fatal: the run continues without arc guidance.
        Cancellation still propagates.
        """
        token.raise_if_cancelled()
        self._enter(Stage.ARC_ANALYSIS, "Analyzing narrative arc")
        request = build_arc_analysis_request(condense_transcript(transcript), model, self.count_tokens)
        try:
            raw = self.client.generate(request, cancel_token=token)
            profile = ArcProfile.model_validate(raw)
        except Cancelled:
            raise
        except (Pod2ReadError, ValidationError) as e:
            logger.warning("Arc analysis failed, continuing without arc guidance: %s", e)
            return None
        logger.info(
            "Arc: %s, climax zone %.0f%%-%.0f%%",
            profile.arc_shape.value,
            profile.climax_zone_start_pct * 100,
            profile.climax_zone_end_pct * 100,
        )
        return profile

    def _generate(
        self,
        request: GenerationRequest,
        token: CancelToken,
        completed: int,
        total: int,
        label: str,
    ) -> Dict[str, Any]:
        token.raise_if_cancelled()
        self._enter(Stage.GENERATING, label, completed, total)

        def on_tokens(count: int) -> None:
            self._report(Stage.GENERATING, f"{label} ({count} tokens)", completed, total)

        result = self.client.generate(request, cancel_token=token, on_token_progress=on_tokens)
        self._report(Stage.GENERATING, label, completed + 1, total)
        return result

    def _finish(self, raw: Dict[str, Any], token: CancelToken, recap_takeaways: bool = False) -> Document:
        token.raise_if_cancelled()
        self._enter(Stage.VALIDATING, "Validating document")
        document = validate_and_normalize(raw)
        if recap_takeaways:
            document.takeaways = chapter_takeaways(document)
        document = enforce_arc_constraints(document)
        self._enter(Stage.DONE, f"{len(document.sections)} sections, {document.thought_count} thoughts", 1, 1)
        return document

    # ----------------------------
    # State / progress
    # ----------------------------

    def _run(self, step: Callable[[], Document]) -> Document:
        self.stage = None
        self.failure = None
        try:
            return step()
        except Pod2ReadError as e:
            self.failure = e.code
            if isinstance(e, Cancelled):
                logger.info("Run cancelled during %s", self.stage.value if self.stage else "startup")
            else:
                logger.error("Run failed during %s: %s", self.stage.value if self.stage else "startup", e)
            raise

    def _enter(self, stage: Stage, message: str, completed: int = 0, total: int = 0) -> None:
        self.stage = stage
        logger.info("[%s] %s", stage.value, message)
        self._report(stage, message, completed, total)

    def _report(self, stage: Stage, message: str, completed: int, total: int) -> None:
        if self.on_progress is not None:
            self.on_progress(Progress(stage=stage.value, message=message, completed=completed, total=total))
