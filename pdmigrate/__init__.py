"""Building blocks for migrating Google Cloud persistent disks: logging, Compute Engine clients and a test harness."""

__version__ = "0.1.0"
__all__ = ["gcp", "harness", "logs"]