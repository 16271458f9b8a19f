"""
Pre-flight input validation.

Catches malformed inputs locally so they never cost an upstream
request, and phrases the failure the same way enriched upstream
errors are phrased.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from ..species import KNOWN_SPECIES, SPECIES_ALIASES
from ..enrich.errors import SPECIES_LIST_HINT, InputValidationError
from ..enrich.fuzzy import suggest_species


MAX_REPORTED_ITEM_ERRORS = 10
LARGE_REGION_BP = 5_000_000

_STABLE_ID = re.compile(r"^ENS[A-Z]{0,3}[GTRPE]\d{11}(\.\d+)?$", re.IGNORECASE)
_REGION = re.compile(r"^[\w.]+:(\d+)-(\d+)$")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one input.

    A valid result may still carry a warning message.
    """

    valid: bool
    message: str | None = None
    suggestion: str | None = None


VALID = ValidationResult(valid=True)


def validate_ensembl_id(identifier: str) -> ValidationResult:
    """Reject strings that look like Ensembl IDs but are malformed.

    Gene symbols such as BRCA1 pass through untouched.
    """
    if not identifier or not isinstance(identifier, str):
        return ValidationResult(False, "Identifier is required.")

    if identifier.upper().startswith("ENS") and not _STABLE_ID.match(identifier):
        return ValidationResult(
            False,
            f"'{identifier}' looks like an Ensembl ID but doesn't match the expected format.",
            "Ensembl stable IDs follow patterns like ENSG00000141510 (gene), "
            "ENST00000288602 (transcript), ENSP00000288602 (protein). Check the ID "
            "length (11 digits after the type letter).",
        )
    return VALID


def validate_region(region: str) -> ValidationResult:
    """Validate ``chromosome:start-end``; regions over 5 Mb pass with a warning."""
    if not region or not isinstance(region, str):
        return ValidationResult(False, "Region is required.")

    match = _REGION.match(region)
    if not match:
        return ValidationResult(
            False,
            f"Invalid region format '{region}'.",
            "Use format 'chromosome:start-end' (e.g., '17:7565096-7590856'). Remove "
            "commas from numbers and ensure start < end.",
        )

    start, end = int(match.group(1)), int(match.group(2))
    if start >= end:
        return ValidationResult(
            False,
            f"Region start ({start}) must be less than end ({end}).",
            "Swap start and end coordinates.",
        )

    size = end - start
    if size > LARGE_REGION_BP:
        return ValidationResult(
            True,
            f"Region spans {size / 1_000_000:.1f}Mb; this is a large query and may be "
            "slow or truncated.",
        )
    return VALID


def validate_species(species: str) -> ValidationResult:
    """Accept known production names and aliases; suggest a fix otherwise."""
    if not species or not isinstance(species, str):
        return ValidationResult(False, "Species is required.")

    lowered = species.lower()
    if lowered in SPECIES_ALIASES or lowered in KNOWN_SPECIES:
        return VALID

    # Unlisted but well-formed production names may still exist upstream
    if re.match(r"^[a-z]+(_[a-z0-9]+)+$", lowered):
        suggestion = suggest_species(lowered)
        if suggestion is None or suggestion == lowered:
            return VALID

    suggestion = suggest_species(species)
    did_you_mean = f" Did you mean '{suggestion}'?" if suggestion else ""
    return ValidationResult(
        False,
        f"Invalid species: '{species}'.{did_you_mean}",
        SPECIES_LIST_HINT,
    )


def validate_batch_items(
    items: Sequence[Any],
    validator: Callable[[Any], ValidationResult],
    name: str,
    max_items: int | None = None,
) -> ValidationResult:
    """Validate a batch array item by item.

    Args:
        items: Items to validate
        validator: Per-item validator
        name: Field name used in messages
        max_items: Optional ceiling on the number of items

    Returns:
        First failure found, reporting at most 10 bad items
    """
    if not isinstance(items, (list, tuple)):
        return ValidationResult(False, f"{name} must be an array.")

    if len(items) == 0:
        return ValidationResult(False, f"{name} array must not be empty.")

    if max_items is not None and len(items) > max_items:
        return ValidationResult(
            False,
            f"{name} array has {len(items)} items, maximum is {max_items}.",
            f"Split into multiple requests of up to {max_items} items each.",
        )

    errors: list[str] = []
    for index, item in enumerate(items):
        if len(errors) >= MAX_REPORTED_ITEM_ERRORS:
            break
        result = validator(item)
        if not result.valid:
            errors.append(f"[{index}] {result.message}")

    if errors:
        return ValidationResult(
            False,
            f"Invalid items in {name}: {'; '.join(errors)}",
            "Fix the listed items and retry.",
        )
    return VALID


def require_valid(result: ValidationResult, endpoint: str = "") -> None:
    """Raise InputValidationError for a failed result."""
    if not result.valid:
        raise InputValidationError(
            result.message or "Invalid input.",
            endpoint,
            suggestion=result.suggestion,
        )
