"""Tick Fixer version metadata."""

__version__ = "1.2.0"
