"""Extreload - live-reload coordination for browser extensions in development."""

__version__ = "0.1.0"
