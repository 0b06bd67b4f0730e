"""High-level persistent disk operations over a Compute disks API."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from ..logs.unified import with_fields_map
from .operations import DEFAULT_OP_TIMEOUT, GcpOperationError, Operation, operation_name, wait_for

_IOPS_THROUGHPUT_TYPES = frozenset(
    {"pd-extreme", "hyperdisk-balanced", "hyperdisk-extreme", "hyperdisk-ml"}
)


def supports_iops_and_throughput(disk_type: str) -> bool:
    """Whether a disk type accepts provisioned IOPS and throughput."""
    return disk_type in _IOPS_THROUGHPUT_TYPES


def _zone_name(zone: str) -> str:
    return zone.rstrip("/").rsplit("/", 1)[-1] if zone else ""


class DisksApi(Protocol):
    """The low-level disks API the client drives; resources are plain dicts."""

    def get(self, *, project: str, zone: str, disk: str) -> dict[str, Any]: ...

    def aggregated_list(self, *, project: str) -> Iterable[tuple[str, Mapping[str, Any]]] | None: ...

    def insert(self, *, project: str, zone: str, disk_resource: dict[str, Any]) -> Operation: ...

    def set_labels(
        self,
        *,
        project: str,
        zone: str,
        resource: str,
        labels: dict[str, str],
        label_fingerprint: str,
    ) -> Operation: ...

    def delete(self, *, project: str, zone: str, disk: str) -> Operation: ...

    def close(self) -> None: ...


class DiskClient:
    """Disk lookups, creation from snapshots, labelling and deletion."""

    def __init__(self, api: DisksApi, op_timeout: float | None = DEFAULT_OP_TIMEOUT) -> None:
        self._api = api
        self._op_timeout = op_timeout

    def __enter__(self) -> DiskClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _await(self, operation: Operation, fields: dict[str, Any], action: str, failure: str) -> None:
        name = operation_name(operation)
        with_fields_map(fields).infof("Waiting for %s operation %s to complete...", action, name)
        try:
            wait_for(operation, self._op_timeout)
        except GcpOperationError as exc:
            with_fields_map(fields).with_error(exc).errorf("Waiting for %s operation %s failed", action, name)
            cause = exc.__cause__ or exc
            raise GcpOperationError(f"{failure}: {cause}") from cause

    def get_disk(self, project_id: str, zone: str, disk_name: str) -> dict[str, Any]:
        fields = {"project": project_id, "zone": zone, "disk": disk_name}
        with_fields_map(fields).info("Retrieving disk information...")
        try:
            disk = self._api.get(project=project_id, zone=zone, disk=disk_name)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to retrieve disk")
            raise GcpOperationError(
                f"failed to get disk {disk_name} in zone {zone}: {exc}"
            ) from exc
        with_fields_map(fields).infof("Retrieved disk: %s", disk.get("name", ""))
        return disk

    def list_detached_disks(
        self, project_id: str, location: str, label_filter: str = ""
    ) -> list[dict[str, Any]]:
        """Return READY disks in the given zone that no instance uses."""
        fields = {"project": project_id, "zone": location}
        with_fields_map(fields).info("Listing detached disks...")
        pages = self._api.aggregated_list(project=project_id)
        if pages is None:
            with_fields_map(fields).warn(
                "AggregatedList returned a nil iterator. Returning empty disk list."
            )
            return []

        disks: list[dict[str, Any]] = []
        try:
            for _scope, scoped in pages:
                for disk in (scoped or {}).get("disks") or ():
                    if (
                        disk.get("status") == "READY"
                        and _zone_name(disk.get("zone", "")) == location
                        and not disk.get("users")
                    ):
                        disks.append(disk)
                        with_fields_map(fields).infof("Found detached disk: %s", disk.get("name", ""))
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to list disks")
            raise GcpOperationError(f"failed to list disks: {exc}") from exc

        with_fields_map(fields).infof("Found %d detached disk(s)", len(disks))
        return disks

    def create_new_disk_from_snapshot(
        self,
        project_id: str,
        zone: str,
        new_disk_name: str,
        target_disk_type: str,
        snapshot_source: str,
        labels: Mapping[str, str] | None,
        size: int,
        iops: int,
        throughput: int,
        storage_pool_id: str = "",
    ) -> None:
        fields = {
            "project": project_id,
            "zone": zone,
            "newDisk": new_disk_name,
            "targetType": target_disk_type,
            "snapshotSource": snapshot_source,
        }
        with_fields_map(fields).info("Initiating disk creation from snapshot...")

        if "/" not in snapshot_source:
            snapshot_source = f"global/snapshots/{snapshot_source}"

        disk: dict[str, Any] = {
            "name": new_disk_name,
            "type": f"zones/{zone}/diskTypes/{target_disk_type}",
            "sourceSnapshot": snapshot_source,
            "labels": dict(labels) if labels is not None else None,
            "sizeGb": size,
        }
        if supports_iops_and_throughput(target_disk_type):
            disk["provisionedIops"] = iops
            disk["provisionedThroughput"] = throughput
        if storage_pool_id:
            disk["storagePool"] = storage_pool_id

        try:
            operation = self._api.insert(project=project_id, zone=zone, disk_resource=disk)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate disk creation")
            raise GcpOperationError(
                f"failed to initiate creation for disk {new_disk_name}: {exc}"
            ) from exc

        self._await(operation, fields, "disk creation", f"waiting for disk {new_disk_name} creation failed")
        with_fields_map(fields).info("Disk created successfully from snapshot.")

    def update_disk_label(
        self, project_id: str, zone: str, disk_name: str, label_key: str, label_value: str
    ) -> None:
        """Set one label on a disk, keeping its other labels."""
        fields = {
            "project": project_id,
            "zone": zone,
            "disk": disk_name,
            "labelKey": label_key,
            "labelVal": label_value,
        }
        with_fields_map(fields).info("Setting disk label...")

        try:
            current = self._api.get(project=project_id, zone=zone, disk=disk_name)
        except Exception as exc:
            raise GcpOperationError(
                f"failed to get current disk state before setting label: {exc}"
            ) from exc

        labels = dict(current.get("labels") or {})
        labels[label_key] = label_value
        fingerprint = current.get("labelFingerprint") or ""

        try:
            operation = self._api.set_labels(
                project=project_id,
                zone=zone,
                resource=disk_name,
                labels=labels,
                label_fingerprint=fingerprint,
            )
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate set disk label operation")
            raise GcpOperationError(
                f"failed to initiate set label for disk {disk_name}: {exc}"
            ) from exc

        self._await(operation, fields, "set label", f"waiting for disk {disk_name} set label failed")
        with_fields_map(fields).info("Disk label set successfully.")

    def delete_disk(self, project_id: str, zone: str, disk_name: str) -> None:
        fields = {"project": project_id, "zone": zone, "disk": disk_name}
        with_fields_map(fields).info("Initiating deletion of disk...")
        try:
            operation = self._api.delete(project=project_id, zone=zone, disk=disk_name)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate disk deletion")
            raise GcpOperationError(
                f"failed to initiate deletion for disk {disk_name}: {exc}"
            ) from exc

        self._await(operation, fields, "disk deletion", f"waiting for disk {disk_name} deletion failed")
        with_fields_map(fields).info("Disk deleted successfully.")

    def close(self) -> None:
        self._api.close()