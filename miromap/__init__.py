"""Miromap: build Miro mind maps from JSON trees."""

__version__ = "0.3.0"
