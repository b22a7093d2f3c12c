"""Upkeep - recurring maintenance scheduling."""

__version__ = "0.1.0"
