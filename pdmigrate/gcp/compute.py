"""High-level Compute Engine instance operations over an instances API."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from ..logs.unified import with_fields_map
from .operations import DEFAULT_OP_TIMEOUT, GcpOperationError, Operation, operation_name, wait_for


def _zone_name(zone: str) -> str:
    return zone.rstrip("/").rsplit("/", 1)[-1] if zone else ""


def _disk_url(project_id: str, zone: str, disk_name: str) -> str:
    return f"projects/{project_id}/zones/{_zone_name(zone)}/disks/{disk_name}"


class InstancesApi(Protocol):
    """The low-level instances API the client drives; resources are plain dicts."""

    def start(self, *, project: str, zone: str, instance: str) -> Operation: ...

    def stop(self, *, project: str, zone: str, instance: str) -> Operation: ...

    def list(self, *, project: str, zone: str, filter: str | None) -> Iterable[dict[str, Any]]: ...

    def aggregated_list(
        self, *, project: str, filter: str | None
    ) -> Iterable[tuple[str, Mapping[str, Any]]]: ...

    def get(self, *, project: str, zone: str, instance: str) -> dict[str, Any]: ...

    def delete(self, *, project: str, zone: str, instance: str) -> Operation: ...

    def attach_disk(
        self, *, project: str, zone: str, instance: str, attached_disk_resource: dict[str, Any]
    ) -> Operation: ...

    def detach_disk(self, *, project: str, zone: str, instance: str, device_name: str) -> Operation: ...

    def close(self) -> None: ...


class ComputeClient:
    """Starting, stopping, listing and changing the disks of instances."""

    def __init__(
        self,
        api: InstancesApi,
        disks_api: Any = None,
        op_timeout: float | None = DEFAULT_OP_TIMEOUT,
    ) -> None:
        self._api = api
        self.disks_api = disks_api
        self._op_timeout = op_timeout

    def __enter__(self) -> ComputeClient:
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

    @staticmethod
    def _fields(project_id: str, zone: str, instance_name: str) -> dict[str, Any]:
        return {"project": project_id, "zone": zone, "instance": instance_name}

    def start_instance(self, project_id: str, zone: str, instance_name: str) -> None:
        fields = self._fields(project_id, zone, instance_name)
        with_fields_map(fields).info("Starting instance")
        try:
            operation = self._api.start(project=project_id, zone=zone, instance=instance_name)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to start instance")
            raise GcpOperationError(
                f"failed to start instance {instance_name} in zone {zone}: {exc}"
            ) from exc
        self._await(
            operation, fields, "instance start",
            f"waiting for instance {instance_name} start operation failed",
        )
        with_fields_map(fields).info("Instance started successfully.")

    def stop_instance(self, project_id: str, zone: str, instance_name: str) -> None:
        fields = self._fields(project_id, zone, instance_name)
        with_fields_map(fields).info("Stopping instance")
        zone = _zone_name(zone)
        try:
            operation = self._api.stop(project=project_id, zone=zone, instance=instance_name)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate instance stop operation")
            raise GcpOperationError(
                f"failed to stop instance {instance_name} in zone {zone}: {exc}"
            ) from exc
        self._await(
            operation, fields, "instance stop",
            f"waiting for instance {instance_name} stop operation failed",
        )
        with_fields_map(fields).info("Instance stopped successfully.")

    def list_instances_in_zone(self, project_id: str, zone: str, filter: str = "") -> list[dict[str, Any]]:
        try:
            instances = list(self._api.list(project=project_id, zone=zone, filter=filter or None))
        except Exception as exc:
            raise GcpOperationError(f"failed to iterate instances in zone {zone}: {exc}") from exc
        with_fields_map(
            {"project": project_id, "zone": zone, "instances": len(instances), "filter": filter}
        ).info("Instances found")
        return instances

    def aggregated_list_instances(self, project_id: str, filter: str = "") -> list[dict[str, Any]]:
        """Return the instances of every zone in the project."""
        with_fields_map({"project": project_id, "filter": filter}).info(
            "Listing all compute instances in project (aggregated list)"
        )
        instances: list[dict[str, Any]] = []
        try:
            for _scope, scoped in self._api.aggregated_list(project=project_id, filter=filter or None):
                instances.extend((scoped or {}).get("instances") or ())
        except Exception as exc:
            raise GcpOperationError(
                f"failed to iterate aggregated instances for project {project_id}: {exc}"
            ) from exc
        with_fields_map({"project": project_id, "count": len(instances), "filter": filter}).info(
            "Successfully listed all instances in project."
        )
        return instances

    def get_instance(self, project_id: str, zone: str, instance_name: str) -> dict[str, Any]:
        with_fields_map(self._fields(project_id, zone, instance_name)).info("Getting instance details")
        try:
            return self._api.get(project=project_id, zone=zone, instance=instance_name)
        except Exception as exc:
            raise GcpOperationError(
                f"failed to get instance {instance_name} in zone {zone}: {exc}"
            ) from exc

    def instance_is_running(self, instance: Mapping[str, Any]) -> bool:
        return instance.get("status") == "RUNNING"

    def get_instance_disks(self, project_id: str, zone: str, instance_name: str) -> list[dict[str, Any]]:
        with_fields_map(self._fields(project_id, zone, instance_name)).info(
            "Getting attached disks for instance"
        )
        try:
            instance = self.get_instance(project_id, zone, instance_name)
        except GcpOperationError as exc:
            raise GcpOperationError(
                f"failed to get instance {instance_name} in zone {zone}: {exc}"
            ) from exc
        disks = instance.get("disks")
        if not disks:
            raise GcpOperationError(f"no disks found for instance {instance_name} in zone {zone}")
        return list(disks)

    def delete_instance(self, project_id: str, zone: str, instance_name: str) -> None:
        fields = self._fields(project_id, zone, instance_name)
        with_fields_map(fields).info("Deleting instance")
        try:
            operation = self._api.delete(project=project_id, zone=zone, instance=instance_name)
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate instance delete operation")
            raise GcpOperationError(
                f"failed to delete instance {instance_name} in zone {zone}: {exc}"
            ) from exc
        self._await(
            operation, fields, "instance delete",
            f"waiting for instance {instance_name} delete operation failed",
        )
        with_fields_map(fields).info("Instance deleted successfully.")

    def attach_disk(
        self, project_id: str, zone: str, instance_name: str, disk_name: str, device_name: str
    ) -> None:
        fields = {**self._fields(project_id, zone, instance_name), "disk": disk_name}
        with_fields_map(fields).info("Attaching disk to instance")
        resource = {"source": _disk_url(project_id, zone, disk_name), "deviceName": device_name}
        try:
            operation = self._api.attach_disk(
                project=project_id, zone=zone, instance=instance_name, attached_disk_resource=resource
            )
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate attach disk operation")
            raise GcpOperationError(
                f"failed to attach disk to instance {instance_name} in zone {zone}: {exc}"
            ) from exc
        self._await(
            operation, fields, "attach disk",
            f"waiting for attach disk to instance {instance_name} operation failed",
        )
        with_fields_map(fields).info("Disk attached successfully to instance.")

    def detach_disk(self, project_id: str, zone: str, instance_name: str, device_name: str) -> None:
        fields = {**self._fields(project_id, zone, instance_name), "deviceName": device_name}
        with_fields_map(fields).info("Detaching disk from instance")
        try:
            operation = self._api.detach_disk(
                project=project_id, zone=zone, instance=instance_name, device_name=device_name
            )
        except Exception as exc:
            with_fields_map(fields).with_error(exc).error("Failed to initiate detach disk operation")
            raise GcpOperationError(
                f"failed to detach disk {device_name} from instance {instance_name} in zone {zone}: {exc}"
            ) from exc
        self._await(
            operation, fields, "detach disk",
            f"waiting for detach disk {device_name} from instance {instance_name} operation failed",
        )
        with_fields_map(fields).info("Disk detached successfully from instance.")

    def close(self) -> None:
        self._api.close()