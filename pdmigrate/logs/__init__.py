"""Console logging that routes user and operational messages apart."""

__all__ = ["formatters", "unified"]