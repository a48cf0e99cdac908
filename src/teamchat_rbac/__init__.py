"""Role hierarchy and permission resolution engine for the team chat platform."""

__version__ = "0.1.0"

__all__ = ["__version__"]
