"""diffden - continuous snapshot history for a handful of scratch files."""

__version__ = "0.1.0"
