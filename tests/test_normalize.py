"""Tests for document decoding, merging and arc enforcement."""

import pytest

from conftest import section, thought
from pod2read.errors import ValidationFailed
from pod2read.models import Document, Energy, Mode
from pod2read.normalize import (
    chapter_takeaways,
    enforce_arc_constraints,
    merge_chapter_results,
    merge_results,
    validate_and_normalize,
)


def energies(document):
    return [t.energy for t in document.iter_thoughts()]


# ----------------------------
# Decoding
# ----------------------------

def test_cosmetic_defects_are_coerced():
    raw = {
        "sections": [
            {
                "title": "Intro",
                "thoughts": [
                    {
                        "text": "Hello there.",
                        "emphasis": ["Hello!", "hello", "there", 7, "again", "fourth"],
                        "mode": "sideways",
                        "energy": "furious",
                        "complexity": 1.7,
                    },
                    {"text": "Second.", "complexity": "0.3"},
                    {"text": "Third.", "complexity": "abc"},
                    {"text": "Fourth.", "complexity": 0},
                ],
            }
        ]
    }
    document = validate_and_normalize(raw)
    first, second, third, fourth = document.sections[0].thoughts

    assert first.emphasis == ["hello", "there", "again"]
    assert first.mode == Mode.FLOW
    assert first.energy == Energy.EXPLANATION
    assert first.complexity == 1.0
    assert second.complexity == pytest.approx(0.3)
    assert third.complexity == 0.5
    assert fourth.complexity == 0.0
    assert document.sections[0].recap == ""
    assert document.takeaways == []


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"sections": []},
        {"sections": "nope"},
        {"sections": [{"title": "", "thoughts": [{"text": "a"}]}]},
        {"sections": [{"title": "A", "thoughts": []}]},
        {"sections": [{"title": "A", "thoughts": [{"text": "  "}]}]},
        {"sections": [{"title": "A", "thoughts": [{"emphasis": []}]}]},
    ],
)
def test_structural_defects_raise(raw):
    with pytest.raises(ValidationFailed):
        validate_and_normalize(raw)


def test_non_object_raises():
    with pytest.raises(ValidationFailed):
        validate_and_normalize(["sections"])


def test_non_string_takeaways_are_dropped():
    document = validate_and_normalize({"sections": [section("A", [thought("a")])], "takeaways": ["x", 3, None]})
    assert document.takeaways == ["x"]


def test_validation_is_idempotent(restructure_result):
    once = validate_and_normalize(restructure_result)
    twice = validate_and_normalize(once)
    assert twice == once


# ----------------------------
# Merging
# ----------------------------

def test_merge_concatenates_sections_and_keeps_last_takeaways():
    results = [
        {"sections": [section("A", [thought("a")])], "takeaways": ["first"]},
        {"sections": [section("B", [thought("b")]), section("C", [thought("c")])], "takeaways": ["last"]},
    ]
    merged = merge_results(results)
    assert [s["title"] for s in merged["sections"]] == ["A", "B", "C"]
    assert merged["takeaways"] == ["last"]


def test_merge_chapter_results_uses_last_non_empty_recap():
    results = [
        {"thoughts": [thought("a")], "recap": "first"},
        {"thoughts": [thought("b")], "recap": ""},
    ]
    merged = merge_chapter_results("Chapter", results)
    assert merged["title"] == "Chapter"
    assert [t["text"] for t in merged["thoughts"]] == ["a", "b"]
    assert merged["recap"] == "first"


def test_chapter_takeaways_are_non_empty_recaps():
    document = Document.model_validate(
        {
            "sections": [
                section("A", [thought("a")], recap="Recap A"),
                section("B", [thought("b")], recap="  "),
                section("C", [thought("c")], recap="Recap C"),
            ]
        }
    )
    assert chapter_takeaways(document) == ["Recap A", "Recap C"]


# ----------------------------
# Arc enforcement
# ----------------------------

def test_climax_budget_keeps_most_complex():
    thoughts = [thought(f"t{i}") for i in range(10)]
    thoughts[2] = thought("c2", "climax", 0.6)
    thoughts[5] = thought("c5", "climax", 0.9)
    thoughts[8] = thought("c8", "climax", 0.7)
    document = Document.model_validate({"sections": [section("A", thoughts)]})

    result = enforce_arc_constraints(document)

    # ceil(10 * 0.15) == 2 climaxes allowed
    climaxes = [t.text for t in result.iter_thoughts() if t.energy == Energy.CLIMAX]
    assert climaxes == ["c5", "c8"]
    assert result.sections[0].thoughts[2].energy == Energy.BUILDING_TENSION


def test_every_climax_is_preceded_by_setup():
    thoughts = [thought("a"), thought("b", "calm_intro"), thought("c", "climax")] + [thought(f"t{i}") for i in range(7)]
    document = Document.model_validate({"sections": [section("A", thoughts)]})

    result = enforce_arc_constraints(document)
    flat = list(result.iter_thoughts())
    for previous, current in zip(flat, flat[1:]):
        if current.energy == Energy.CLIMAX:
            assert previous.energy in (Energy.BUILDING_TENSION, Energy.CLIMAX)
    assert flat[1].energy == Energy.BUILDING_TENSION


def test_leading_climax_is_downgraded():
    thoughts = [thought("a", "climax", 0.9)] + [thought(f"t{i}") for i in range(9)]
    document = Document.model_validate({"sections": [section("A", thoughts)]})
    result = enforce_arc_constraints(document)
    assert energies(result)[0] == Energy.BUILDING_TENSION
    assert Energy.CLIMAX not in energies(result)


def test_setup_rule_crosses_section_boundaries():
    document = Document.model_validate(
        {
            "sections": [
                section("A", [thought(f"a{i}") for i in range(6)]),
                section("B", [thought("peak", "climax")] + [thought(f"b{i}") for i in range(5)]),
            ]
        }
    )
    result = enforce_arc_constraints(document)
    assert result.sections[0].thoughts[-1].energy == Energy.BUILDING_TENSION
    assert result.sections[1].thoughts[0].energy == Energy.CLIMAX


def test_enforcement_does_not_mutate_input(sample_document):
    before = sample_document.model_copy(deep=True)
    enforce_arc_constraints(sample_document)
    assert sample_document == before


def test_enforcement_is_idempotent(sample_document):
    once = enforce_arc_constraints(sample_document)
    assert enforce_arc_constraints(once) == once


def test_equal_complexity_keeps_earlier_climax():
    thoughts = [thought(f"t{i}") for i in range(7)]
    thoughts[2] = thought("first", "climax", 0.8)
    thoughts[5] = thought("second", "climax", 0.8)
    document = Document.model_validate({"sections": [section("A", thoughts)]})

    # ceil(7 * 0.15) == 2, so use a single-climax budget
    result = enforce_arc_constraints(document, climax_ratio=0.1)
    climaxes = [t.text for t in result.iter_thoughts() if t.energy == Energy.CLIMAX]
    assert climaxes == ["first"]
