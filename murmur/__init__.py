"""Murmur: anonymized, delayed single-recipient message relay."""

__version__ = "0.1.0"
