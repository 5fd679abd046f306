"""HTTP surface of the order core."""

__version__ = "1.0.0"
