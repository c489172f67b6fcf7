"""Process-level runtime helpers."""
