"""Adapters for the external tools borgreport drives."""

from . import borg, mail

__all__ = ["borg", "mail"]
