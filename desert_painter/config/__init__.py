"""
Configuration modules for the terrain editor.
"""

from .settings import Settings, settings
from .brush_settings import BrushConfig, MIN_BRUSH_SIZE, MAX_BRUSH_SIZE, FALLOFF_EXPONENT

__all__ = ['Settings', 'settings', 'BrushConfig', 'MIN_BRUSH_SIZE', 'MAX_BRUSH_SIZE', 'FALLOFF_EXPONENT']
