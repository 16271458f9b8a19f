"""Error enrichment and fuzzy suggestions."""

from .errors import (
    EnsemblError,
    InputValidationError,
    RetryExhaustedError,
    enrich_error,
    enrich_species_error,
)
from .fuzzy import closest, edit_distance, suggest_species

__all__ = [
    # Errors
    "EnsemblError",
    "InputValidationError",
    "RetryExhaustedError",
    "enrich_error",
    "enrich_species_error",
    # Fuzzy matching
    "closest",
    "edit_distance",
    "suggest_species",
]
