# Configuration package
"""
Configuration package for partkeeper
Exports the settings class and loader
"""
from .settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
