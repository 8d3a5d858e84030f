"""A small Unix-style journaled file system held in memory, with an image builder and tools."""

__version__ = "0.1.0"