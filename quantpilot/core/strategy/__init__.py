"""Strategy authoring helpers."""
