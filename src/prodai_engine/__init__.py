"""Generation job processing engine for AI product images and videos."""

__version__ = "0.1.0"
