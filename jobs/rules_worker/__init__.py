"""Standalone rules worker (same scheduler the API hosts, run in the foreground)."""
