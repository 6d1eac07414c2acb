"""
Host-owned processing session.

Holds the one cached Document (keyed by a content identifier such as a
video id) and the cancel token of the run in flight. The pipeline and
Timeline never reach for this state themselves.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .cancel import CancelToken
from .errors import Cancelled
from .models import Chapter, Document, VideoContext
from .pipeline import ProcessingPipeline

logger = logging.getLogger(__name__)


class Session:
    def __init__(self, pipeline: Optional[ProcessingPipeline] = None):
        self._pipeline = pipeline
        self._lock = threading.Lock()
        self._token: Optional[CancelToken] = None
        self.content_id: Optional[str] = None
        self.document: Optional[Document] = None

    @property
    def pipeline(self) -> Optional[ProcessingPipeline]:
        return self._pipeline

    @property
    def running(self) -> bool:
        return self._token is not None

    def attach(self, pipeline: ProcessingPipeline) -> None:
        self._pipeline = pipeline

    def detach(self) -> None:
        """Cancel any run in flight and drop the pipeline."""
        self.cancel()
        self._pipeline = None

    def clear(self) -> None:
        self.content_id = None
        self.document = None

    def cancel(self) -> None:
        with self._lock:
            token = self._token
        if token is not None:
            token.cancel()

    def cached(self, content_id: str) -> Optional[Document]:
        if self.document is not None and self.content_id == content_id:
            return self.document
        return None

    def run_transcript(
        self,
        content_id: str,
        transcript: str,
        duration_seconds: Optional[float] = None,
        video_context: Optional[VideoContext] = None,
    ) -> Document:
        cached = self.cached(content_id)
        if cached is not None:
            logger.info("Reusing cached reading for %s", content_id)
            return cached
        pipeline = self._require_pipeline()
        return self._store(
            content_id,
            lambda token: pipeline.process_transcript(transcript, duration_seconds, video_context, token),
        )

    def run_chapters(self, content_id: str, chapters: List[Chapter]) -> Document:
        cached = self.cached(content_id)
        if cached is not None:
            logger.info("Reusing cached reading for %s", content_id)
            return cached
        pipeline = self._require_pipeline()
        return self._store(content_id, lambda token: pipeline.process_with_chapters(chapters, token))

    def _require_pipeline(self) -> ProcessingPipeline:
        if self._pipeline is None:
            raise RuntimeError("No pipeline attached to this session")
        return self._pipeline

    def _store(self, content_id: str, run) -> Document:
        token = CancelToken()
        with self._lock:
            if self._token is not None:
                raise RuntimeError("A pipeline run is already in progress")
            self._token = token
        try:
            document = run(token)
        finally:
            with self._lock:
                self._token = None
        if token.cancelled:
            raise Cancelled("Run was cancelled")
        self.content_id = content_id
        self.document = document
        return document
