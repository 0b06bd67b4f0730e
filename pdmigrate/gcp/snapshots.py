"""Snapshot creation, deletion and lookup over a Compute snapshots API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

from ..logs.unified import debugf, with_fields_map
from .operations import DEFAULT_OP_TIMEOUT, GcpOperationError, Operation, operation_name, wait_for

MANAGED_BY_KEY = "managed-by"
MANAGED_BY_VALUE = "pd-migrate"


@dataclass(frozen=True)
class SnapshotKmsParams:
    """Cloud KMS key used to encrypt snapshots."""

    kms_key: str = ""
    kms_key_ring: str = ""
    kms_location: str = ""
    kms_project: str = ""

    def key_name(self, default_project: str) -> str:
        """Full resource name of the key; the project defaults to default_project."""
        project = self.kms_project or default_project
        return (
            f"projects/{project}/locations/{self.kms_location}"
            f"/keyRings/{self.kms_key_ring}/cryptoKeys/{self.kms_key}"
        )


class SnapshotsApi(Protocol):
    """The low-level snapshots API the client drives; resources are plain dicts."""

    def insert(self, *, project: str, snapshot_resource: dict[str, Any]) -> Operation: ...

    def delete(self, *, project: str, snapshot: str) -> Operation: ...

    def list(self, *, project: str, filter: str) -> Iterable[dict[str, Any]] | None: ...

    def close(self) -> None: ...


class SnapshotClient:
    """Snapshot operations, tagging every snapshot it creates as managed."""

    def __init__(self, api: SnapshotsApi, op_timeout: float | None = DEFAULT_OP_TIMEOUT) -> None:
        self._api = api
        self._op_timeout = op_timeout

    def __enter__(self) -> SnapshotClient:
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

    def create_snapshot(
        self,
        project_id: str,
        zone: str,
        disk_name: str,
        snapshot_name: str,
        kms_params: SnapshotKmsParams | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        fields: dict[str, Any] = {
            "project": project_id,
            "zone": zone,
            "disk": disk_name,
            "snapshotName": snapshot_name,
        }
        with_fields_map(fields).info("Initiating snapshot creation...")

        snapshot_labels = dict(labels or {})
        snapshot_labels[MANAGED_BY_KEY] = MANAGED_BY_VALUE
        source_disk = f"projects/{project_id}/zones/{zone}/disks/{disk_name}"

        debugf("Creating snapshot with name: %s (length: %d)", snapshot_name, len(snapshot_name))
        debugf("Source disk URL: %s", source_disk)

        resource: dict[str, Any] = {
            "name": snapshot_name,
            "labels": snapshot_labels,
            "sourceDisk": source_disk,
        }
        if kms_params is not None and kms_params.kms_key:
            fields["kmsKey"] = kms_params.kms_key
            resource["snapshotEncryptionKey"] = {"kmsKeyName": kms_params.key_name(project_id)}
            with_fields_map(fields).info("Applying KMS encryption to snapshot")

        try:
            operation = self._api.insert(project=project_id, snapshot_resource=resource)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate snapshot creation")
            raise GcpOperationError(
                f"failed to initiate snapshot creation for disk {disk_name}: {exc}"
            ) from exc

        self._await(
            operation, fields, "snapshot creation",
            f"waiting for snapshot {snapshot_name} creation failed",
        )
        with_fields_map(fields).info("Snapshot created successfully.")

    def delete_snapshot(self, project_id: str, snapshot_name: str) -> None:
        fields = {"project": project_id, "snapshotName": snapshot_name}
        with_fields_map(fields).info("Initiating deletion of snapshot...")
        try:
            operation = self._api.delete(project=project_id, snapshot=snapshot_name)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate snapshot deletion")
            raise GcpOperationError(
                f"failed to initiate deletion for snapshot {snapshot_name}: {exc}"
            ) from exc

        self._await(
            operation, fields, "snapshot deletion",
            f"waiting for snapshot {snapshot_name} deletion failed",
        )
        with_fields_map(fields).info("Snapshot deleted successfully.")

    def list_snapshots_by_label(
        self, project_id: str, label_key: str, label_value: str
    ) -> list[dict[str, Any]]:
        label_filter = f"labels.{label_key} = {label_value}"
        fields = {"project": project_id, "filter": label_filter}
        with_fields_map(fields).info("Listing snapshots by label...")

        items = self._api.list(project=project_id, filter=label_filter)
        if items is None:
            with_fields_map(fields).warn("List returned a nil iterator. Returning empty snapshot list.")
            return []

        try:
            snapshots = list(items)
        except Exception as exc:
            raise GcpOperationError(f"failed iterating snapshot list: {exc}") from exc

        with_fields_map(fields).infof("Found %d snapshots matching label.", len(snapshots))
        return snapshots

    def close(self) -> None:
        self._api.close()