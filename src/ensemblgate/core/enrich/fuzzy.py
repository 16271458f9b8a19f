"""
Nearest-neighbour lookup over small fixed vocabularies.

Used to turn a misspelled species token into a "did you mean" hint.
"""

from __future__ import annotations

from typing import Iterable

from rapidfuzz.distance import Levenshtein

from ..species import KNOWN_SPECIES, SPECIES_ALIASES


DEFAULT_MAX_DISTANCE = 3


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert/delete/substitute costs."""
    return Levenshtein.distance(a, b)


def closest(
    value: str,
    candidates: Iterable[str],
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> str | None:
    """Find the candidate nearest to ``value`` within ``max_distance`` edits.

    Comparison is case-insensitive. Ties go to the candidate seen first,
    so the result is deterministic for a given candidate order.

    Args:
        value: Token to match
        candidates: Vocabulary to search
        max_distance: Largest edit distance accepted as a match

    Returns:
        The closest candidate (original casing) or None
    """
    lowered = value.lower()
    best_match: str | None = None
    best_distance = max_distance + 1

    for candidate in candidates:
        distance = Levenshtein.distance(
            lowered, candidate.lower(), score_cutoff=max_distance
        )
        if distance < best_distance:
            best_distance = distance
            best_match = candidate

    return best_match


def suggest_species(value: str) -> str | None:
    """Suggest a production species name for a user-supplied token.

    Exact alias hits win; otherwise the nearest known species name.
    """
    lowered = value.strip().lower().replace(" ", "_").replace("-", "_")

    if lowered in SPECIES_ALIASES:
        return SPECIES_ALIASES[lowered]

    return closest(lowered, KNOWN_SPECIES)
