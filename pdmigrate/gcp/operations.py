"""Waiting on long-running Compute API operations."""

from __future__ import annotations

from typing import Any, Protocol

DEFAULT_OP_TIMEOUT = 600.0
"""Seconds to wait for a single long-running operation."""


class GcpOperationError(RuntimeError):
    """A Compute API call or one of its long-running operations failed."""


class Operation(Protocol):
    """A long-running operation returned by the Compute API."""

    name: str

    def wait(self, timeout: float | None = None) -> Any:
        """Block until the operation finishes or the timeout expires."""


def operation_name(operation: Any) -> str:
    """Return the operation's name, or an empty string if it has none."""
    return str(getattr(operation, "name", "") or "")


def wait_for(operation: Operation, timeout: float | None = DEFAULT_OP_TIMEOUT) -> Any:
    """Wait for an operation to finish and return what its wait returned.

    Any failure while waiting is raised as GcpOperationError, chained to the cause.
    """
    try:
        return operation.wait(timeout=timeout)
    except GcpOperationError:
        raise
    except Exception as exc:
        raise GcpOperationError(
            f"operation {operation_name(operation)} failed: {exc}"
        ) from exc