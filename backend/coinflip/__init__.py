"""Coinflip: round lifecycle and settlement engine for the betting platform."""

__version__ = "0.1.0"
__author__ = "Coinflip Team"

__all__ = ["__version__", "__author__"]
