"""Helpers for integration tests driven through gcloud and terraform."""

__all__ = ["gcloud", "terraform", "workspace"]