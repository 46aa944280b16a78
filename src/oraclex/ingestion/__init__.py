"""Chain event ingestion: source adapter, backfill, live listener, projection."""
