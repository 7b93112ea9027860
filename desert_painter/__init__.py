"""
Desert Painter: real-time terrain sculpting core.
"""

__version__ = "0.1.0"
