"""Outer surfaces: report renderers and the ``borgreport`` command."""

from . import formats

__all__ = ["formats"]
