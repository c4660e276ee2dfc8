"""Environment configurations for functional tests."""

from envconfigs.devnet import DevnetEnvConfig

__all__ = ["DevnetEnvConfig"]
