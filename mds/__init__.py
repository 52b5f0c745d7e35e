"""Embedded-style components: definitions, logging, buttons, paths, a virtual file system and low-power control."""

__version__ = "0.1.0"
__all__ = ["defs", "log", "button", "paths", "vfs", "lpc"]