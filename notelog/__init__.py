"""notelog: import language-learning notes into a per-language log."""

__version__ = "0.1.0"
