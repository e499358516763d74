"""Assistant core for a scientific image-analysis workbench."""

__version__ = "0.1.0"
