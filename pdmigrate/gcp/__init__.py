"""High-level clients for disks, snapshots and instances over caller-supplied Compute APIs."""

__all__ = ["clients", "compute", "disks", "operations", "snapshots"]