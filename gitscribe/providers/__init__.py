"""Provider adapters (CLI and HTTP API backends)."""
