"""
Input normalization.

Smooths over the format variations a language model tends to produce
(chromosome prefixes, thousands separators, mixed case) before the
values are used in request paths and cache keys.
"""

from __future__ import annotations

import re
from typing import Any, Mapping


_CDNA_RANGE = re.compile(r"^\d+[.:\-|]+\d+$")

IDENTIFIER_FIELDS = (
    "gene_id",
    "gene_symbol",
    "feature_id",
    "identifier",
    "variant_id",
    "protein_id",
    "transcript_id",
)
SPECIES_FIELDS = ("species", "target_species")


def normalize_region(region: str) -> str:
    """Normalize a genomic region to ``chromosome:start-end``.

    Handles ``chr17:1,000-2,000``, ``chromosome17:1000-2000`` and stray
    spaces around separators.
    """
    if not region:
        return region

    normalized = re.sub(r"\s*:\s*", ":", region.strip())
    normalized = re.sub(r"\s*-\s*", "-", normalized)
    # Thousands separators: 1,000,000 -> 1000000
    normalized = re.sub(r"(\d),(?=\d)", r"\1", normalized)
    normalized = re.sub(r"^(chromosome|chr)(?=[0-9XYM])", "", normalized, flags=re.IGNORECASE)
    return normalized


def normalize_cdna_coordinates(coords: str) -> str:
    """Normalize cDNA/CDS coordinates to ``start..end``."""
    if not coords:
        return coords

    normalized = re.sub(r"\s+", "", coords)
    return re.sub(r"(\d+)[-:|](\d+)", r"\1..\2", normalized)


def normalize_species_name(species: str) -> str:
    """Lower snake case: "Homo Sapiens" -> "homo_sapiens"."""
    if not species:
        return species
    return re.sub(r"\s+", "_", species.strip().lower())


def normalize_identifier(identifier: str) -> str:
    """Normalize gene/transcript/variant identifiers.

    Ensembl stable IDs and plain gene symbols are upper-cased; dbSNP and
    COSMIC ids are left untouched.
    """
    if not identifier:
        return identifier

    identifier = identifier.strip()

    if re.match(r"^ENS[A-Z]", identifier, re.IGNORECASE):
        return identifier.upper()

    if re.match(r"^(rs|COSM)\d+$", identifier, re.IGNORECASE):
        return identifier

    if re.match(r"^[A-Za-z][A-Za-z0-9]*$", identifier):
        return identifier.upper()

    return identifier


def normalize_hgvs(hgvs: str) -> str:
    """Remove spacing around ``:`` and ``.`` in HGVS notation."""
    if not hgvs:
        return hgvs
    normalized = re.sub(r"\s*:\s*", ":", hgvs.strip())
    return re.sub(r"\s*\.\s*", ".", normalized)


def normalize_inputs(args: Mapping[str, Any]) -> dict[str, Any]:
    """Apply the field-appropriate normalizer to each known argument.

    Args:
        args: Tool arguments keyed by field name

    Returns:
        New dictionary with normalized values
    """
    normalized = dict(args)

    if normalized.get("region"):
        normalized["region"] = normalize_region(normalized["region"])

    coordinates = normalized.get("coordinates")
    if coordinates:
        if _CDNA_RANGE.match(re.sub(r"\s", "", coordinates)):
            normalized["coordinates"] = normalize_cdna_coordinates(coordinates)
        else:
            normalized["coordinates"] = normalize_region(coordinates)

    for field_name in SPECIES_FIELDS:
        if normalized.get(field_name):
            normalized[field_name] = normalize_species_name(normalized[field_name])

    for field_name in IDENTIFIER_FIELDS:
        value = normalized.get(field_name)
        if isinstance(value, str) and value:
            normalized[field_name] = normalize_identifier(value)
        elif isinstance(value, list):
            normalized[field_name] = [
                normalize_identifier(item) if isinstance(item, str) else item
                for item in value
            ]

    if normalized.get("hgvs_notation"):
        normalized["hgvs_notation"] = normalize_hgvs(normalized["hgvs_notation"])

    return normalized
