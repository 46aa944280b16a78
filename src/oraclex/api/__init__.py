"""Read-only HTTP API (FastAPI)."""
