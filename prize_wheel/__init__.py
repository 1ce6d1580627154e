"""Shared real-time prize wheel: config sync, spin state machine and play-once records"""

__version__ = "1.0.0"
