"""Common utilities and helpers used across the engine."""

__all__ = [
    "ids",
    "logging",
]
