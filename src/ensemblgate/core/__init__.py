"""Core access layer: fetch pipeline, enrichment, configuration."""
