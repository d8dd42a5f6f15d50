"""API routers."""

from notesynth.routers import health, notes

__all__ = ["health", "notes"]
