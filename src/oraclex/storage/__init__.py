"""DuckDB persistence for the mirrored tables."""
