"""Application configuration."""

from analysis_worker.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
