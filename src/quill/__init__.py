"""quill - tool-augmented conversation engine."""

__version__ = "0.3.0"
