"""Service factories for creating test services."""

from factories.devnet import DevnetFactory

__all__ = ["DevnetFactory"]
