"""
Actionable error handling for Ensembl REST responses.

Maps a failure status and the shape of the endpoint that produced it
into an EnsemblError carrying a suggestion and, where one can be
derived, a corrected example call. The calling model uses these to
self-correct without a human in the loop.
"""

from __future__ import annotations

import re
from typing import Any

from .fuzzy import suggest_species


SPECIES_LIST_HINT = (
    "Use ensembl_meta with info_type='species' to list all available species. "
    "Species names use underscore format (e.g., 'homo_sapiens', 'mus_musculus')."
)
SPECIES_LIST_EXAMPLE = "ensembl_meta with info_type='species'"

REGION_EXAMPLE = "region='17:7565096-7590856'"

_STABLE_ID_PATTERN = re.compile(r"^ENS[A-Z]{0,3}[GTRPE]\d{11}$", re.IGNORECASE)

_LOOKUP_ID = re.compile(r"/lookup/id/(.+?)(?:\?|$)")
_LOOKUP_SYMBOL = re.compile(r"/lookup/symbol/([^/]+)/(.+?)(?:\?|$)")
_VARIATION = re.compile(r"/variation/([^/]+)/(.+?)(?:\?|$)")
_REGION = re.compile(r"/region/[^/]+/(.+?)(?:\?|$)")
_SPECIES_SEGMENT = re.compile(
    r"/(?:info/assembly|info/biotypes|info/analysis|info/external_dbs|info/variation"
    r"|overlap/region|lookup/symbol|vep|variation|ld|phenotype|sequence/region)/([^/?]+)"
)


# =============================================================================
# Exceptions
# =============================================================================


class EnsemblError(Exception):
    """Structured, immutable error surfaced to callers.

    Attributes are read-only once the error is built.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None,
        endpoint: str,
        suggestion: str | None = None,
        example: str | None = None,
    ):
        super().__init__(message)
        self._message = message
        self._status_code = status_code
        self._endpoint = endpoint
        self._suggestion = suggestion
        self._example = example

    @property
    def message(self) -> str:
        return self._message

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def suggestion(self) -> str | None:
        return self._suggestion

    @property
    def example(self) -> str | None:
        return self._example

    def to_dict(self) -> dict[str, Any]:
        """Serialize for a tool response; absent hints are omitted."""
        data: dict[str, Any] = {"error": self._message}
        if self._suggestion:
            data["suggestion"] = self._suggestion
        if self._example:
            data["example"] = self._example
        data["success"] = False
        return data

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self._message!r}, "
            f"status_code={self._status_code!r}, endpoint={self._endpoint!r})"
        )


class RetryExhaustedError(EnsemblError):
    """A retryable failure persisted through the whole retry budget."""

    def __init__(
        self,
        message: str,
        status_code: int | None,
        endpoint: str,
        attempts: int,
        last_error: Exception | None = None,
        suggestion: str | None = None,
        example: str | None = None,
    ):
        super().__init__(message, status_code, endpoint, suggestion, example)
        self._attempts = attempts
        self._last_error = last_error

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> Exception | None:
        return self._last_error


class InputValidationError(EnsemblError):
    """Input rejected locally, before any network interaction."""

    def __init__(
        self,
        message: str,
        endpoint: str = "",
        suggestion: str | None = None,
        example: str | None = None,
    ):
        super().__init__(message, None, endpoint, suggestion, example)


# =============================================================================
# Enrichment
# =============================================================================


def enrich_error(
    status_code: int,
    status_text: str,
    endpoint: str,
    body: str | None = None,
    params: dict[str, str] | None = None,
) -> EnsemblError:
    """Enrich a raw API failure with actionable context.

    Args:
        status_code: HTTP status returned by the upstream
        status_text: HTTP reason phrase
        endpoint: Request path (may include a query string)
        body: Raw response body, if any
        params: Query parameters of the failed request

    Returns:
        EnsemblError with suggestion/example where derivable
    """
    if status_code == 429:
        return EnsemblError(
            "Ensembl API rate limit exceeded.",
            429,
            endpoint,
            "Requests are retried automatically with backoff. If this persists, "
            "space out your requests.",
        )

    if status_code == 503:
        return EnsemblError(
            "Ensembl REST API is temporarily unavailable.",
            503,
            endpoint,
            "Check status at https://rest.ensembl.org/info/ping. "
            "This is usually resolved within minutes.",
        )

    if status_code == 404:
        return _enrich_not_found(endpoint)

    if status_code == 400:
        return _enrich_bad_request(endpoint, body)

    return EnsemblError(
        f"Ensembl API error: {status_code} {status_text}".rstrip(),
        status_code,
        endpoint,
    )


def _enrich_not_found(endpoint: str) -> EnsemblError:
    id_match = _LOOKUP_ID.search(endpoint)
    if id_match:
        identifier = id_match.group(1)
        suggestion = (
            "Ensembl stable IDs follow patterns like ENSG[0-9]{11} (gene), "
            "ENST[0-9]{11} (transcript), ENSP[0-9]{11} (protein). Verify the ID or "
            "use ensembl_lookup with lookup_type='symbol' to search by gene name."
        )
        if not _STABLE_ID_PATTERN.match(identifier):
            suggestion = (
                f"ID '{identifier}' does not match the expected Ensembl stable ID "
                f"format. {suggestion}"
            )
        return EnsemblError(
            f"ID '{identifier}' not found.",
            404,
            endpoint,
            suggestion,
            "ensembl_lookup with identifier='ENSG00000141510'",
        )

    symbol_match = _LOOKUP_SYMBOL.search(endpoint)
    if symbol_match:
        species, symbol = symbol_match.groups()
        return EnsemblError(
            f"Gene symbol '{symbol}' not found for {species}.",
            404,
            endpoint,
            "Check spelling. Gene symbols are typically uppercase for human "
            "(e.g., 'BRCA1', 'TP53'). Use ensembl_lookup with lookup_type='symbol'.",
            f"ensembl_lookup with identifier='BRCA1', lookup_type='symbol', "
            f"species='{species}'",
        )

    variation_match = _VARIATION.search(endpoint)
    if variation_match:
        species, variant_id = variation_match.groups()
        return EnsemblError(
            f"Variant '{variant_id}' not found for {species}.",
            404,
            endpoint,
            "Verify the variant ID. dbSNP IDs start with 'rs' (e.g., 'rs699'). "
            "COSMIC IDs start with 'COSM'.",
            "ensembl_variation with variant_id='rs699', analysis_type='variant_info'",
        )

    return EnsemblError(
        f"Resource not found: {endpoint}",
        404,
        endpoint,
        "Verify the identifier exists in the current Ensembl release. Use "
        "ensembl_meta with info_type='data' to check the current release version.",
    )


def _enrich_bad_request(endpoint: str, body: str | None) -> EnsemblError:
    text = body or ""

    if "/overlap/region" in endpoint or "/sequence/region" in endpoint:
        region_match = _REGION.search(endpoint)
        region = region_match.group(1) if region_match else ""

        if "," in region:
            return EnsemblError(
                f"Invalid region format '{region}'.",
                400,
                endpoint,
                "Remove commas from coordinates and use format 'chromosome:start-end'.",
                REGION_EXAMPLE,
            )

        return EnsemblError(
            f"Invalid region '{region}'.",
            400,
            endpoint,
            "Use format 'chromosome:start-end' (e.g., '17:7565096-7590856'). "
            "Coordinates must be positive integers with start < end.",
            REGION_EXAMPLE,
        )

    species_match = _SPECIES_SEGMENT.search(endpoint)
    if species_match and "species" in text.lower():
        species = species_match.group(1)
        suggestion = suggest_species(species)
        did_you_mean = f" Did you mean '{suggestion}'?" if suggestion else ""
        return EnsemblError(
            f"Species '{species}' not recognized.{did_you_mean}",
            400,
            endpoint,
            SPECIES_LIST_HINT,
            SPECIES_LIST_EXAMPLE,
        )

    if "/map/cds" in endpoint or "/map/cdna" in endpoint:
        return EnsemblError(
            "Coordinate mapping requires a valid transcript or translation ID.",
            400,
            endpoint,
            "Provide a feature_id (transcript ID like 'ENST00000288602' or translation "
            "ID like 'ENSP00000288602') along with the coordinates.",
            "ensembl_mapping with coordinates='100..300', feature_id='ENST00000288602', "
            "mapping_type='cdna'",
        )

    if "/vep/" in endpoint:
        return EnsemblError(
            "Invalid VEP request.",
            400,
            endpoint,
            "For VEP by variant ID, use an rsID (e.g., 'rs699'). For VEP by HGVS, use "
            "standard HGVS notation (e.g., '17:g.7579472G>C' or "
            "'ENST00000288602.6:c.1799T>A').",
            "ensembl_variation with variant_id='rs699', analysis_type='vep'",
        )

    return EnsemblError(
        f"Bad request: {text or endpoint}",
        400,
        endpoint,
        "Check that all parameter values are correctly formatted. Review the tool "
        "description for expected input formats.",
    )


def enrich_species_error(species: str) -> EnsemblError:
    """Build a pre-flight species error with a fuzzy-match suggestion."""
    suggestion = suggest_species(species)
    did_you_mean = f" Did you mean '{suggestion}'?" if suggestion else ""

    return InputValidationError(
        f"Invalid species: '{species}'.{did_you_mean}",
        f"/info/assembly/{species}",
        SPECIES_LIST_HINT,
        SPECIES_LIST_EXAMPLE,
    )
