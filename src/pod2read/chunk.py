"""
Transcript chunker (sentence-aligned, overlapping).

Long transcripts are split into chunks of roughly ``target_words`` words so
each generation request stays within a local model's context window
(~4500 tokens input + ~600 token system prompt + ~2000 token output).
Consecutive chunks share their boundary sentences so the model reading
chunk i+1 sees how chunk i ended.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Callable, List, Optional

import tiktoken

logger = logging.getLogger(__name__)

CHUNK_TARGET_WORDS = 3500
CONDENSE_TARGET_WORDS = 1500
OVERLAP_SENTENCES = 2
WORDS_PER_SENTENCE = 15

# A sentence keeps its terminal punctuation and one following whitespace
# character; trailing text without punctuation is its own sentence.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+\s?|[^.!?]+$")


# ----------------------------
# Utilities
# ----------------------------

def format_ts(seconds: float) -> str:
    seconds = max(0, int(seconds))
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def word_count(text: str) -> int:
    return len(text.split())


def simple_token_count(text: str) -> int:
    """
    Approximate token count without a tokenizer.
    """
    parts = re.findall(r"\w+|[^\w\s]", text, flags=re.UNICODE)
    return len(parts)


TokenCounter = Callable[[str], int]


def load_token_counter() -> TokenCounter:
    """
    Build a token counter using tiktoken (preferred) or fallback approximation.

    tiktoken downloads the encoding file on first use, so this belongs in
    setup code, never in per-request paths.

    Returns:
        Function mapping text to an approximate token count
    """
    try:
        # Local models use their own vocabularies; cl100k is a close enough estimate
        tokenizer = tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        logger.warning("tiktoken encoding unavailable, approximating token counts: %s", e)
        return simple_token_count

    def count_tokens(text: str) -> int:
        return len(tokenizer.encode(text, disallowed_special=()))

    return count_tokens


def split_sentences(text: str) -> List[str]:
    """Split text on ``.``, ``!`` and ``?``; joining the result restores the input."""
    return _SENTENCE_RE.findall(text) or [text]


# ----------------------------
# Core chunking logic
# ----------------------------

def split_into_sentence_chunks(text: str, target_words: int = CHUNK_TARGET_WORDS) -> List[str]:
    """
    Split text into sentence-aligned chunks of about ``target_words`` words.

    Each emitted chunk seeds the next one with its last two sentences, so
    chunk i+1 begins with the exact trailing sentences of chunk i.

    Args:
        text: Full transcript text
        target_words: Word budget that closes a chunk once reached

    Returns:
        Ordered list of chunk texts (never empty)
    """
    sentences = split_sentences(text)

    chunks: List[str] = []
    current: List[str] = []
    current_words = 0
    overlap: List[str] = []

    for sentence in sentences:
        current.append(sentence)
        current_words += word_count(sentence)

        if current_words >= target_words:
            chunks.append("".join(current))
            overlap = current[-OVERLAP_SENTENCES:]
            current = list(overlap)
            current_words = sum(word_count(s) for s in overlap)

    # Only emit the tail if it holds something beyond the seeded overlap
    if len(current) > len(overlap):
        chunks.append("".join(current))

    return chunks


def split_chapter_into_sub_chunks(text: str, target_words: int = CHUNK_TARGET_WORDS) -> List[str]:
    """Return ``[text]`` when the chapter fits the budget, else its sentence chunks."""
    if word_count(text) <= target_words:
        return [text]
    return split_into_sentence_chunks(text, target_words)


def condense_transcript(text: str, target_words: int = CONDENSE_TARGET_WORDS) -> str:
    """
    Condense a transcript to a uniform sample of its sentences.

    Keeps every Nth sentence, N chosen so that about ``target_words`` words
    remain assuming ~15 words per sentence. Used for whole-transcript arc
    analysis where only the overall shape matters.
    """
    if word_count(text) <= target_words:
        return text

    sentences = split_sentences(text)
    budget_sentences = max(1, target_words // WORDS_PER_SENTENCE)
    step = max(1, math.ceil(len(sentences) / budget_sentences))
    sampled = [s.strip() for s in sentences[::step]]
    return " ".join(s for s in sampled if s)


def word_positions(chunks: List[str], total_words: Optional[int] = None) -> List[tuple]:
    """
    Return ``(start_pct, end_pct)`` for each chunk by cumulative word count.

    Overlap sentences are counted in both neighbouring chunks, so the
    fractions are computed against the summed chunk lengths unless
    ``total_words`` is given.
    """
    counts = [word_count(c) for c in chunks]
    total = total_words if total_words else sum(counts)
    if total <= 0:
        return [(0.0, 1.0) for _ in chunks]

    positions = []
    cumulative = 0
    for count in counts:
        start = cumulative / total
        cumulative += count
        positions.append((min(1.0, start), min(1.0, cumulative / total)))
    return positions
