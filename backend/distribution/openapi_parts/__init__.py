"""Registry and helpers for the programmatic OpenAPI builder."""

__all__ = [
    "constants",
    "helpers",
]
