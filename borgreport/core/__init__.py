"""Configuration, formatting, progress and logging helpers."""

from . import config, formatting, observability, progress

__all__ = ["config", "formatting", "observability", "progress"]
