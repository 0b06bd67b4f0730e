"""A small client over the gcloud command line for checking live resources."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

GcloudRunner = Callable[[Sequence[str], "float | None"], str]
"""Runs a full gcloud command line and returns its standard output."""


class GcloudError(RuntimeError):
    """A gcloud command failed or printed something that could not be parsed."""


def _run_gcloud(argv: Sequence[str], timeout: float | None) -> str:
    completed = subprocess.run(
        list(argv), capture_output=True, text=True, check=True, timeout=timeout
    )
    return completed.stdout


@dataclass
class AttachedDisk:
    """A disk as listed on an instance."""

    device_name: str = ""
    source: str = ""
    mode: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttachedDisk:
        return cls(
            device_name=data.get("deviceName", ""),
            source=data.get("source", ""),
            mode=data.get("mode", ""),
            type=data.get("type", ""),
        )


@dataclass
class Instance:
    """The parts of a Compute Engine instance the checks look at."""

    name: str = ""
    zone: str = ""
    machine_type: str = ""
    status: str = ""
    disks: list[AttachedDisk] = field(default_factory=list)
    network_ips: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Instance:
        return cls(
            name=data.get("name", ""),
            zone=data.get("zone", ""),
            machine_type=data.get("machineType", ""),
            status=data.get("status", ""),
            disks=[AttachedDisk.from_dict(disk) for disk in data.get("disks") or ()],
            network_ips=[
                nic.get("networkIP", "") for nic in data.get("networkInterfaces") or ()
            ],
        )


@dataclass
class DiskInfo:
    """The parts of a persistent disk the checks look at."""

    name: str = ""
    zone: str = ""
    type: str = ""
    status: str = ""
    size_gb: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    users: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiskInfo:
        return cls(
            name=data.get("name", ""),
            zone=data.get("zone", ""),
            type=data.get("type", ""),
            status=data.get("status", ""),
            size_gb=str(data.get("sizeGb", "")),
            labels=dict(data.get("labels") or {}),
            users=list(data.get("users") or ()),
        )


def _decode(output: str, failure: str) -> Any:
    try:
        return json.loads(output)
    except (TypeError, ValueError) as exc:
        raise GcloudError(f"{failure}: {exc}") from exc


def _decode_object(output: str, failure: str) -> dict[str, Any]:
    data = _decode(output, failure)
    if not isinstance(data, dict):
        raise GcloudError(f"{failure}: expected a JSON object")
    return data


class GcloudClient:
    """Runs gcloud commands against one project."""

    def __init__(
        self,
        project_id: str,
        runner: GcloudRunner | None = None,
        timeout: float | None = None,
    ) -> None:
        self.project_id = project_id
        self.runner = runner or _run_gcloud
        self.timeout = timeout

    def _run(self, args: Sequence[str], failure: str) -> str:
        argv = ["gcloud", *args]
        try:
            return self.runner(argv, self.timeout)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            raise GcloudError(f"{failure}: {exc}") from exc

    def _describe_disk(self, scope_flag: str, scope: str, disk_name: str, failure: str) -> DiskInfo:
        output = self._run(
            [
                "compute", "disks", "describe", disk_name,
                scope_flag, scope,
                "--project", self.project_id,
                "--format", "json",
            ],
            failure,
        )
        return DiskInfo.from_dict(_decode_object(output, "failed to parse disk data"))

    def get_instance(self, zone: str, instance_name: str) -> Instance:
        output = self._run(
            [
                "compute", "instances", "describe", instance_name,
                "--zone", zone,
                "--project", self.project_id,
                "--format", "json",
            ],
            "failed to get instance",
        )
        return Instance.from_dict(_decode_object(output, "failed to parse instance data"))

    def get_disk(self, zone: str, disk_name: str) -> DiskInfo:
        return self._describe_disk("--zone", zone, disk_name, "failed to get disk")

    def get_regional_disk(self, region: str, disk_name: str) -> DiskInfo:
        return self._describe_disk("--region", region, disk_name, "failed to get regional disk")

    def list_disks(self, zone: str = "", label_filter: str = "") -> list[DiskInfo]:
        args = ["compute", "disks", "list", "--project", self.project_id, "--format", "json"]
        if zone:
            args += ["--filter", f"zone:({zone})"]
        if label_filter:
            args += ["--filter", f"labels.{label_filter}"]
        output = self._run(args, "failed to list disks")
        data = _decode(output, "failed to parse disks data")
        if data is None:
            return []
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise GcloudError("failed to parse disks data: expected a JSON array of objects")
        return [DiskInfo.from_dict(item) for item in data]

    def stop_instance(self, zone: str, instance_name: str) -> None:
        self._run(
            ["compute", "instances", "stop", instance_name, "--zone", zone, "--project", self.project_id],
            "failed to stop instance",
        )

    def start_instance(self, zone: str, instance_name: str) -> None:
        self._run(
            ["compute", "instances", "start", instance_name, "--zone", zone, "--project", self.project_id],
            "failed to start instance",
        )


def extract_disk_name_from_source(source: str) -> str:
    """The last path segment of a disk source URL."""
    return source.split("/")[-1]


def extract_zone_from_path(path: str) -> str:
    """The segment after 'zones' in a resource path, or an empty string."""
    parts = path.split("/")
    for part, following in zip(parts, parts[1:]):
        if part == "zones":
            return following
    return ""