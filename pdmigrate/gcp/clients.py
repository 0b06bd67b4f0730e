"""The bundle of Compute API clients the migration works with."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from ..logs.unified import debug, info
from .compute import ComputeClient
from .disks import DiskClient
from .snapshots import SnapshotClient
from .operations import GcpOperationError


class ApiFactory(Protocol):
    """Creates the low-level Compute API clients."""

    def disks(self) -> Any: ...

    def snapshots(self) -> Any: ...

    def zones(self) -> Any: ...

    def regions(self) -> Any: ...

    def instances(self) -> Any: ...


def _close_quietly(resource: Any) -> None:
    if resource is not None:
        with contextlib.suppress(Exception):
            resource.close()


@dataclass
class Clients:
    """High-level disk, snapshot and compute clients plus zone and region APIs."""

    disk_client: DiskClient | None = None
    snapshot_client: SnapshotClient | None = None
    compute_client: ComputeClient | None = None
    zones: Any = None
    regions: Any = None

    def __enter__(self) -> Clients:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        debug("Closing GCP Compute API clients...")
        for resource in (self.disk_client, self.snapshot_client, self.compute_client, self.zones, self.regions):
            _close_quietly(resource)
        debug("GCP Compute API clients closed.")


def new_clients(api_factory: ApiFactory) -> Clients:
    """Create every API client; on failure close those already made and raise."""
    debug("Initializing GCP Compute API client...")
    steps: list[tuple[str, Callable[[], Any], str]] = [
        ("disks", api_factory.disks, "Disks"),
        ("snapshots", api_factory.snapshots, "Snapshots"),
        ("zones", api_factory.zones, "Zones"),
        ("regions", api_factory.regions, "Regions"),
        ("instances", api_factory.instances, "Instances (GCE)"),
    ]
    ready_messages = {
        "disks": "Disks client initialized.",
        "snapshots": "Snapshots client initialized.",
        "zones": "Zones client initialized.",
        "regions": "Regions client initialized.",
        "instances": "GCE client initialized.",
    }
    created: dict[str, Any] = {}
    for key, make, label in steps:
        try:
            created[key] = make()
        except Exception as exc:
            for resource in created.values():
                _close_quietly(resource)
            raise GcpOperationError(f"failed to create compute {label} client: {exc}") from exc
        debug(ready_messages[key])

    clients = Clients(
        disk_client=DiskClient(created["disks"]),
        snapshot_client=SnapshotClient(created["snapshots"]),
        compute_client=ComputeClient(created["instances"], created["disks"]),
        zones=created["zones"],
        regions=created["regions"],
    )
    info("Successfully initialized GCP Compute API clients.")
    return clients