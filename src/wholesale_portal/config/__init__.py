"""Configuration subpackage - settings and data paths."""
from .settings import Settings, get_settings

__all__ = ['Settings', 'get_settings']
