"""Tests for transcript chunking."""

import pytest

from pod2read.chunk import (
    condense_transcript,
    format_ts,
    load_token_counter,
    simple_token_count,
    split_chapter_into_sub_chunks,
    split_into_sentence_chunks,
    split_sentences,
    word_count,
    word_positions,
)


def make_sentences(n, words_per_sentence=10):
    return [" ".join(f"s{i}w{j}" for j in range(words_per_sentence)) + "." for i in range(n)]


def test_split_sentences_round_trips_text():
    text = "First one. Second one! Third? trailing words"
    sentences = split_sentences(text)
    assert sentences == ["First one. ", "Second one! ", "Third? ", "trailing words"]
    assert "".join(sentences) == text


def test_split_sentences_without_terminators():
    assert split_sentences("no punctuation here") == ["no punctuation here"]


def test_short_text_is_one_chunk():
    text = "One sentence. Another sentence."
    assert split_into_sentence_chunks(text) == [text]


def test_chunks_overlap_by_two_sentences():
    text = " ".join(make_sentences(30))
    chunks = split_into_sentence_chunks(text, target_words=100)

    assert len(chunks) > 1
    for previous, current in zip(chunks, chunks[1:]):
        tail = split_sentences(previous)[-2:]
        assert current.startswith("".join(tail))


def test_every_chunk_but_last_meets_target():
    text = " ".join(make_sentences(30))
    chunks = split_into_sentence_chunks(text, target_words=100)
    for chunk in chunks[:-1]:
        assert word_count(chunk) >= 100


def test_all_sentences_are_covered():
    sentences = make_sentences(25)
    chunks = split_into_sentence_chunks(" ".join(sentences), target_words=60)
    joined = " ".join(chunks)
    for sentence in sentences:
        assert sentence in joined


def test_no_tail_chunk_of_only_overlap():
    # 8 sentences of 10 words with a 50-word target: the second chunk closes exactly at the end
    text = " ".join(make_sentences(8))
    chunks = split_into_sentence_chunks(text, target_words=50)
    assert len(chunks) == 2
    assert chunks[-1].rstrip().endswith("s7w9.")


def test_chapter_within_budget_is_single_chunk():
    text = " ".join(make_sentences(5))
    assert split_chapter_into_sub_chunks(text, target_words=100) == [text]


def test_long_chapter_is_split():
    text = " ".join(make_sentences(30))
    assert len(split_chapter_into_sub_chunks(text, target_words=100)) > 1


def test_condense_short_text_is_unchanged():
    text = "Short text. Nothing to do."
    assert condense_transcript(text) == text


def test_condense_samples_every_nth_sentence():
    sentences = make_sentences(400, words_per_sentence=10)  # 4000 words
    condensed = condense_transcript(" ".join(sentences), target_words=1500)

    # 100 sentences budgeted, 400 available: every 4th is kept
    assert condensed.startswith(sentences[0])
    assert sentences[4] in condensed
    assert sentences[1] not in condensed
    assert word_count(condensed) == 100 * 10


def test_word_positions_are_contiguous():
    positions = word_positions(["a b c", "d e", "f g h i j"])
    assert positions[0][0] == 0.0
    assert positions[-1][1] == pytest.approx(1.0)
    for (_, end), (start, _) in zip(positions, positions[1:]):
        assert end == pytest.approx(start)


def test_format_ts():
    assert format_ts(3725) == "01:02:05"
    assert format_ts(-3) == "00:00:00"


def test_simple_token_count_counts_words_and_punctuation():
    assert simple_token_count("Hello, world!") == 4


def test_empty_text_is_one_chunk():
    assert split_into_sentence_chunks("") == [""]


def test_chunks_minus_overlap_rebuild_the_sentences():
    sentences = split_sentences(" ".join(make_sentences(40)))
    chunks = split_into_sentence_chunks("".join(sentences), target_words=70)

    rebuilt = split_sentences(chunks[0])
    for chunk in chunks[1:]:
        rebuilt.extend(split_sentences(chunk)[2:])
    assert rebuilt == sentences


def test_token_counter_falls_back_without_encoding(monkeypatch):
    def unavailable(name):
        raise OSError("no network")

    monkeypatch.setattr("pod2read.chunk.tiktoken.get_encoding", unavailable)
    assert load_token_counter() is simple_token_count


def test_token_counter_uses_loaded_encoding(monkeypatch):
    class Encoding:
        def encode(self, text, disallowed_special=()):
            return text.split()

    monkeypatch.setattr("pod2read.chunk.tiktoken.get_encoding", lambda name: Encoding())
    count = load_token_counter()
    assert count("one two three") == 3
