"""Command line entry point."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import List, Optional

from .chunk import format_ts
from .config import Settings
from .errors import ABORTED, NO_MODELS_INSTALLED, OLLAMA_NOT_RUNNING, Pod2ReadError, user_message
from .events import SectionEnd, ThoughtChange, TimelineEvent
from .model_selection import parse_param_size, pick_best_model
from .model_store import JsonModelStore
from .models import Document, Progress, VideoContext
from .normalize import validate_and_normalize
from .ollama_client import OllamaClient
from .pacing import speed_label
from .pipeline import ProcessingPipeline
from .session import Session
from .timeline import Timeline
from .transcript import (
    ChapterMark,
    Segment,
    map_segments_to_chapters,
    normalize_segments,
    parse_description_timestamps,
    parse_json3,
    parse_timestamp,
    segments_to_plain_text,
)
from .youtube_client import YoutubeClient, extract_video_id

logger = logging.getLogger(__name__)


class ProgressPrinter:
    """Prints one line per stage or completed request; token counts only when verbose."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._last = None

    def __call__(self, progress: Progress) -> None:
        key = (progress.stage, progress.completed)
        if key == self._last:
            if self.verbose:
                print(f"\r    {progress.message}", end="", flush=True)
            return
        if self._last is not None and self.verbose:
            print()
        self._last = key
        counter = f" [{progress.completed}/{progress.total}]" if progress.total else ""
        print(f"  {progress.stage}{counter}: {progress.message}")


def build_pipeline(settings: Settings, verbose: bool = False) -> ProcessingPipeline:
    client = OllamaClient(
        base_url=settings.ollama_host,
        request_timeout=settings.request_timeout,
        health_timeout=settings.health_timeout,
    )
    return ProcessingPipeline(
        client,
        model_store=JsonModelStore(settings.model_store_path),
        requested_model=settings.model,
        on_progress=ProgressPrinter(verbose),
    )


def load_chapter_marks(path: str) -> List[ChapterMark]:
    """Chapters file: JSON list of ``{"title": ..., "start": "1:23" | seconds}``."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    marks = []
    for entry in raw:
        start = entry["start"]
        seconds = parse_timestamp(start) if isinstance(start, str) else float(start)
        marks.append(ChapterMark(title=entry["title"], start=seconds))
    return marks


def load_caption_file(path: str) -> List[Segment]:
    """Captions file: YouTube json3 (``{"events": [...]}``) or a JSON list of ``{start, end|duration, text}``."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        return parse_json3(raw)
    return normalize_segments(raw)


def _run_cancellable(session: Session, run):
    """Run a pipeline call on a worker thread so Ctrl-C can cancel it cleanly."""
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(run)
        while True:
            try:
                return future.result(timeout=0.25)
            except FutureTimeout:
                continue
            except KeyboardInterrupt:
                print("\nCancelling...")
                session.cancel()


def read_video(
    url: str,
    chapters_file: Optional[str] = None,
    wpm: Optional[int] = None,
    verbose: bool = False,
    captions_file: Optional[str] = None,
) -> Optional[Path]:
    """Fetch a transcript (or load saved captions), restructure it, and save the reading as JSON."""
    settings = Settings.from_env()
    video_id = extract_video_id(url)
    print(f"Reading video: {url}")

    client = YoutubeClient()
    if captions_file:
        segments = load_caption_file(captions_file)
    else:
        try:
            segments = client.get_transcript(video_id)
        except Exception as e:
            logger.debug("Transcript fetch failed", exc_info=True)
            print(f"Could not fetch transcript for your video ({e}). Please check the video id and try again.")
            return None
    transcript = segments_to_plain_text(segments)
    if not transcript.strip():
        print("This video has no usable captions.")
        return None
    if verbose:
        print(f"  ✓ Transcript fetched: {len(segments)} segments")

    metadata = client.get_video_metadata(video_id, url)
    if chapters_file:
        marks = load_chapter_marks(chapters_file)
    else:
        marks = parse_description_timestamps(metadata["description"])
    chapters = map_segments_to_chapters(segments, marks)

    session = Session(build_pipeline(settings, verbose))
    try:
        if chapters:
            print(f"Processing {len(chapters)} chapters...")
            document = _run_cancellable(session, lambda: session.run_chapters(video_id, chapters))
        else:
            context = VideoContext(
                title=metadata["title"],
                keywords=metadata["keywords"],
                description=metadata["description"],
            )
            document = _run_cancellable(
                session,
                lambda: session.run_transcript(video_id, transcript, metadata["duration"] or None, context),
            )
    except Pod2ReadError as e:
        if e.code == ABORTED:
            print("Cancelled.")
        else:
            logger.debug("Pipeline failed", exc_info=True)
            print(f"Error ({e.code}): {user_message(e.code)}")
        return None

    output_folder = Path(f"output_{video_id}")
    os.makedirs(output_folder, exist_ok=True)
    output_path = output_folder / "reading.json"
    output_path.write_text(document.model_dump_json(indent=2), encoding="utf-8")

    timeline = Timeline()
    timeline.load(document, wpm or settings.wpm)
    print(f"Reading saved to {output_path}")
    print(f"  {len(document.sections)} sections, {document.thought_count} thoughts")
    if metadata["duration"]:
        savings = timeline.get_video_savings(metadata["duration"])
        print(
            f"  Reading time {savings.reading_time / 60:.1f} min at {timeline.wpm:g} wpm "
            f"(video {savings.video_duration / 60:.1f} min, saves {savings.saved_seconds / 60:.1f} min)"
        )
    print(f"\nPlay it with: pod2read play {output_path}")
    return output_path


def play_reading(path: str, wpm: Optional[int] = None, rate: float = 1.0) -> None:
    """Play a saved reading in the terminal."""
    settings = Settings.from_env()
    document: Document = validate_and_normalize(json.loads(Path(path).read_text(encoding="utf-8")))

    timeline = Timeline()
    timeline.load(document, wpm or settings.wpm)
    timeline.set_rate(rate)

    def on_thought_change(event: ThoughtChange) -> None:
        item = timeline.thoughts[event.index]
        # sectionChange follows thoughtChange, so the heading is printed from here
        if item.is_first_in_section:
            print(f"\n## {item.section_title}\n")
        print(f"  {event.thought.text}")

    def on_section_end(event: SectionEnd) -> None:
        print(f"\n  Recap: {event.section.recap}")

    timeline.on(TimelineEvent.THOUGHT_CHANGE, on_thought_change)
    timeline.on(TimelineEvent.SECTION_END, on_section_end)
    timeline.on(TimelineEvent.END, lambda _: print("\nDone."))

    print(f"{speed_label(timeline.wpm)} pace: {timeline.wpm:g} wpm, {timeline.total_duration / 60000:.1f} min")
    print(f"\n## {document.sections[0].title}\n")
    print(f"  {document.sections[0].thoughts[0].text}")
    try:
        timeline.play()
        timeline.run()
    except KeyboardInterrupt:
        timeline.pause()
        print(
            f"\nPaused at thought {timeline.current_index + 1} of {len(timeline.thoughts)} "
            f"({format_ts(timeline.current_time / 1000)}, {format_ts(timeline.get_remaining_time() / 1000)} left)."
        )
    finally:
        timeline.destroy()

    if document.takeaways:
        print("\nKey takeaways:")
        for takeaway in document.takeaways:
            print(f"  - {takeaway}")


def list_models() -> None:
    """Show installed models and the one auto-selection would pick."""
    settings = Settings.from_env()
    client = OllamaClient(settings.ollama_host, health_timeout=settings.health_timeout)
    health = client.check_health()
    if not health.running:
        print(f"Error: {user_message(OLLAMA_NOT_RUNNING)}")
        return
    if not health.models:
        print(f"Error: {user_message(NO_MODELS_INSTALLED)}")
        return

    best = pick_best_model(health.models)
    saved = JsonModelStore(settings.model_store_path).load()
    for model in sorted(health.models, key=lambda m: parse_param_size(m.param_size)):
        marks = []
        if best is not None and model.name == best.name:
            marks.append("auto")
        if model.name == saved:
            marks.append("saved")
        suffix = f"  ({', '.join(marks)})" if marks else ""
        print(f"  {model.name:<32} {model.param_size or '?':>8} {model.quantization:<8}{suffix}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point with subcommands."""
    parser = argparse.ArgumentParser(
        description="pod2read - Turn long videos into paced readings",
        prog="pod2read",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    read_parser = subparsers.add_parser("read", help="Restructure a YouTube video into a reading")
    read_parser.add_argument("url", help="YouTube video URL")
    read_parser.add_argument("--chapters", help="JSON file with [{title, start}] chapter marks")
    read_parser.add_argument("--captions", help="Saved captions file (json3 or [{start, end, text}])")
    read_parser.add_argument("--wpm", type=int, help="Reading speed for the time estimate")
    read_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    play_parser = subparsers.add_parser("play", help="Play a saved reading in the terminal")
    play_parser.add_argument("path", help="Path to reading.json")
    play_parser.add_argument("--wpm", type=int, help="Reading speed in words per minute")
    play_parser.add_argument("--rate", type=float, default=1.0, help="Playback rate multiplier")
    play_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    models_parser = subparsers.add_parser("models", help="List installed Ollama models")
    models_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "read":
        read_video(
            args.url,
            chapters_file=args.chapters,
            wpm=args.wpm,
            verbose=args.verbose,
            captions_file=args.captions,
        )
    elif args.command == "play":
        play_reading(args.path, wpm=args.wpm, rate=args.rate)
    elif args.command == "models":
        list_models()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
