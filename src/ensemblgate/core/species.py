"""
Species vocabularies and assembly server routing.

Single source of truth for species names and aliases used by
fuzzy matching, input validation and error enrichment, plus the
mapping from assembly names to Ensembl REST servers.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse


# =============================================================================
# Species Vocabularies
# =============================================================================


KNOWN_SPECIES: list[str] = [
    "homo_sapiens",
    "mus_musculus",
    "rattus_norvegicus",
    "danio_rerio",
    "drosophila_melanogaster",
    "caenorhabditis_elegans",
    "saccharomyces_cerevisiae",
    "gallus_gallus",
    "sus_scrofa",
    "bos_taurus",
    "ovis_aries",
    "equus_caballus",
    "canis_lupus_familiaris",
    "felis_catus",
    "pan_troglodytes",
    "gorilla_gorilla",
    "macaca_mulatta",
    "xenopus_tropicalis",
    "takifugu_rubripes",
    "oryzias_latipes",
]

# Common names -> production names
SPECIES_ALIASES: dict[str, str] = {
    "human": "homo_sapiens",
    "homo_sapiens_sapiens": "homo_sapiens",
    "mouse": "mus_musculus",
    "rat": "rattus_norvegicus",
    "zebrafish": "danio_rerio",
    "zebra_fish": "danio_rerio",
    "fruitfly": "drosophila_melanogaster",
    "fruit_fly": "drosophila_melanogaster",
    "fly": "drosophila_melanogaster",
    "drosophila": "drosophila_melanogaster",
    "worm": "caenorhabditis_elegans",
    "c_elegans": "caenorhabditis_elegans",
    "yeast": "saccharomyces_cerevisiae",
    "chicken": "gallus_gallus",
    "pig": "sus_scrofa",
    "cow": "bos_taurus",
    "sheep": "ovis_aries",
    "horse": "equus_caballus",
    "dog": "canis_lupus_familiaris",
    "cat": "felis_catus",
    "chimp": "pan_troglodytes",
    "chimpanzee": "pan_troglodytes",
    "gorilla": "gorilla_gorilla",
    "macaque": "macaca_mulatta",
    "rhesus": "macaca_mulatta",
    "frog": "xenopus_tropicalis",
    "pufferfish": "takifugu_rubripes",
    "medaka": "oryzias_latipes",
}


# =============================================================================
# Assembly Server Routing
# =============================================================================


DEFAULT_SERVER = "https://rest.ensembl.org"
GRCH37_SERVER = "https://grch37.rest.ensembl.org"

ASSEMBLY_SERVERS: dict[str, str] = {
    "GRCh38": DEFAULT_SERVER,
    "GRCh37": GRCH37_SERVER,
}

# Short identifiers used as the server half of a cache scope
SERVER_IDENTIFIERS: dict[str, str] = {
    DEFAULT_SERVER: "grch38",
    GRCH37_SERVER: "grch37",
}

ASSEMBLY_ALIASES: dict[str, str] = {
    "grch38": "GRCh38",
    "grch37": "GRCh37",
    "hg38": "GRCh38",
    "hg19": "GRCh37",
}

# Comparative genomics is only served from the GRCh38 server
GRCH37_UNSUPPORTED_ENDPOINTS: list[re.Pattern[str]] = [
    re.compile(r"^/cafe/"),
    re.compile(r"^/genetree/"),
    re.compile(r"^/homology/"),
    re.compile(r"^/alignment/"),
]

_HUMAN_SPECIES = {"homo_sapiens", "human"}


def resolve_base_url(assembly: str | None = None, species: str | None = None) -> str:
    """Pick the REST server for an assembly/species combination.

    Only human + GRCh37 (or hg19) routes to the GRCh37 server; every
    other combination, including unknown assemblies, uses the default.

    Args:
        assembly: Assembly name or alias (e.g. "GRCh37", "hg19")
        species: Species name or alias (default: human)

    Returns:
        Base URL of the server to query
    """
    if not assembly:
        return DEFAULT_SERVER

    canonical = ASSEMBLY_ALIASES.get(assembly.lower())
    if canonical != "GRCh37":
        return DEFAULT_SERVER

    if species:
        lowered = species.lower()
        resolved = SPECIES_ALIASES.get(lowered, lowered)
    else:
        resolved = "homo_sapiens"

    if resolved not in _HUMAN_SPECIES:
        return DEFAULT_SERVER

    return ASSEMBLY_SERVERS["GRCh37"]


def server_identifier(base_url: str) -> str:
    """Get the short identifier for a server URL.

    Known servers map to their assembly name. Any other server is
    identified by scheme, host and base path, so two mirrors on one host
    never share a cache scope.
    """
    normalized = base_url.rstrip("/")
    if normalized in SERVER_IDENTIFIERS:
        return SERVER_IDENTIFIERS[normalized]

    parts = urlparse(normalized)
    if not parts.netloc:
        return normalized
    return f"{parts.scheme}://{parts.netloc.lower()}{parts.path}"


def check_grch37_support(endpoint: str) -> str | None:
    """Return an error message if the endpoint is unavailable on GRCh37."""
    for pattern in GRCH37_UNSUPPORTED_ENDPOINTS:
        if pattern.search(endpoint):
            return (
                f"The GRCh37 server does not support this endpoint ({endpoint}). "
                "Comparative genomics data (homology, gene trees, CAFE trees, alignments) "
                "is only available on the GRCh38 server. Remove the assembly parameter "
                "or use assembly 'GRCh38'."
            )
    return None
