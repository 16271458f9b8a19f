"""Normalization and pre-flight validation of caller inputs."""

from .inputs import (
    normalize_cdna_coordinates,
    normalize_hgvs,
    normalize_identifier,
    normalize_inputs,
    normalize_region,
    normalize_species_name,
)
from .validation import (
    VALID,
    ValidationResult,
    require_valid,
    validate_batch_items,
    validate_ensembl_id,
    validate_region,
    validate_species,
)

__all__ = [
    # Normalization
    "normalize_cdna_coordinates",
    "normalize_hgvs",
    "normalize_identifier",
    "normalize_inputs",
    "normalize_region",
    "normalize_species_name",
    # Validation
    "VALID",
    "ValidationResult",
    "require_valid",
    "validate_batch_items",
    "validate_ensembl_id",
    "validate_region",
    "validate_species",
]
