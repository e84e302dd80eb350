"""Blog content helpers."""
