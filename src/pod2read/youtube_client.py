"""Transcript and metadata fetching for YouTube videos."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from pytube import YouTube
from youtube_transcript_api import YouTubeTranscriptApi

from .transcript import Segment, normalize_segments

logger = logging.getLogger(__name__)


def extract_video_id(url: str) -> str:
    """Extract video ID from YouTube URL."""
    if "v=" in url:
        return url.split("v=")[1].split("&")[0]
    # Handle short URLs or other formats
    return url.split("/")[-1].split("?")[0]


class YoutubeClient:
    def __init__(self):
        self.client = YouTubeTranscriptApi()

    def get_transcript(self, video_id: str, languages: Sequence[str] = ("en",)) -> List[Segment]:
        transcript = self.client.fetch(video_id, languages=list(languages))
        return normalize_segments(
            [
                {"start": snippet.start, "end": snippet.start + snippet.duration, "text": snippet.text}
                for snippet in transcript
            ]
        )

    def get_video_metadata(self, video_id: str, url: Optional[str] = None) -> Dict[str, Any]:
        """
        Get video metadata using pytube.
        Returns: title, channel, duration (seconds), url, description, keywords
        """
        watch_url = f"https://www.youtube.com/watch?v={video_id}"
        try:
            yt = YouTube(url or watch_url)
            return {
                "title": yt.title,
                "channel": yt.author,
                "duration": yt.length,  # in seconds
                "url": watch_url,
                "description": yt.description or "",
                "keywords": list(yt.keywords or []),
            }
        except Exception as e:
            # Metadata only enriches prompts; the transcript alone is enough to proceed
            logger.warning("Could not fetch metadata for %s: %s", video_id, e)
            return {
                "title": "",
                "channel": "",
                "duration": 0,
                "url": watch_url,
                "description": "",
                "keywords": [],
            }
