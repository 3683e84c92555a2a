"""NoteFinder - per-user hybrid retrieval over markdown notes."""

__version__ = "0.1.0"
