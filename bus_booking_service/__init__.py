"""Bus booking service: booking lifecycle for bus trips."""

__version__ = "1.0.0"
