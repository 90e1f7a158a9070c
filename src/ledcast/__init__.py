"""Web emulation of a ws281x LED strip driver"""

__version__ = "0.1.0"
