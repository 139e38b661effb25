"""Domain models and error taxonomy for repository status reports."""

from . import contracts, errors, models

__all__ = ["contracts", "errors", "models"]
