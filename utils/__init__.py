"""Shared helpers: the Result type, text normalization and logging context."""
