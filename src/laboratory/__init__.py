"""Portable lab environments: images, expanded directories and mounted volumes."""

__version__ = "0.1.1"
