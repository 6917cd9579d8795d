"""decypher: static analysis of bundled JavaScript."""

__version__ = "0.1.0"
