"""API package for Casefile."""
