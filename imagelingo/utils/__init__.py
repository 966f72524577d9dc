"""Shared utilities: logging, retries, callback dispatch, formatting."""
