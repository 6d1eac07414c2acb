"""
Merging, validation and narrative-arc enforcement of generated documents.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List

from pydantic import ValidationError

from .errors import ValidationFailed
from .models import Document, Energy

logger = logging.getLogger(__name__)

CLIMAX_RATIO = 0.15

_SETUP_ENERGIES = (Energy.BUILDING_TENSION, Energy.CLIMAX)


def merge_results(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge per-chunk restructure results into one raw document.

    Sections are concatenated in chunk order. Takeaways come from the last
    chunk only: it is the one that has seen the conclusion.
    """
    merged: Dict[str, Any] = {"sections": [], "takeaways": []}
    for result in results:
        sections = result.get("sections")
        if isinstance(sections, list):
            merged["sections"].extend(sections)

    if results and isinstance(results[-1].get("takeaways"), list):
        merged["takeaways"] = results[-1]["takeaways"]
    return merged


def merge_chapter_results(title: str, results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Build one raw section from a chapter's sub-chunk results.

    Thoughts are concatenated; the recap is the last non-empty one.
    """
    thoughts: List[Any] = []
    recap = ""
    for result in results:
        if isinstance(result.get("thoughts"), list):
            thoughts.extend(result["thoughts"])
        if isinstance(result.get("recap"), str) and result["recap"]:
            recap = result["recap"]
    return {"title": title, "recap": recap, "thoughts": thoughts}


def validate_and_normalize(data: Any) -> Document:
    """
    Decode a raw document, failing on structural defects.

    Raises:
        ValidationFailed: sections missing/empty, a section without a title
            or thoughts, or a thought without text
    """
    if isinstance(data, Document):
        data = data.model_dump(mode="json")
    if not isinstance(data, dict):
        raise ValidationFailed(f"Expected a JSON object, got {type(data).__name__}")
    try:
        return Document.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationFailed(f"Invalid document at {location}: {first['msg']}") from e


def enforce_arc_constraints(document: Document, climax_ratio: float = CLIMAX_RATIO) -> Document:
    """
    Return a copy of ``document`` whose climaxes respect the arc rules.

    1. At most ``ceil(total * climax_ratio)`` climax thoughts; the most
       complex ones are kept, the rest become building_tension.
    2. A climax cannot open the reading: a leading climax becomes
       building_tension.
    3. Every climax is directly preceded by building_tension or climax.
    """
    result = document.model_copy(deep=True)
    thoughts = list(result.iter_thoughts())
    if not thoughts:
        return result

    max_climax = math.ceil(len(thoughts) * climax_ratio)
    climaxes = [t for t in thoughts if t.energy == Energy.CLIMAX]
    if len(climaxes) > max_climax:
        # sorted() is stable, so equal complexity keeps the earlier thought
        ranked = sorted(climaxes, key=lambda t: t.complexity, reverse=True)
        for thought in ranked[max_climax:]:
            thought.energy = Energy.BUILDING_TENSION
        logger.debug("Downgraded %d climax thoughts (budget %d)", len(climaxes) - max_climax, max_climax)

    if thoughts[0].energy == Energy.CLIMAX:
        thoughts[0].energy = Energy.BUILDING_TENSION

    for previous, thought in zip(thoughts, thoughts[1:]):
        if thought.energy == Energy.CLIMAX and previous.energy not in _SETUP_ENERGIES:
            previous.energy = Energy.BUILDING_TENSION

    return result


def chapter_takeaways(document: Document) -> List[str]:
    """Chapter runs do not ask for takeaways; the chapter recaps stand in."""
    return [s.recap for s in document.sections if s.recap and s.recap.strip()]
