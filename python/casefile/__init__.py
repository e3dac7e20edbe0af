"""Casefile: detective case catalog, purchases and evidence API."""

__version__ = "0.1.0"
