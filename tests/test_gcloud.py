import json
import subprocess

import pytest

from pdmigrate.harness.gcloud import (
    AttachedDisk,
    DiskInfo,
    GcloudClient,
    GcloudError,
    extract_disk_name_from_source,
    extract_zone_from_path,
)


class FakeRunner:
    def __init__(self, output="", error=None):
        self.output = output
        self.error = error
        self.calls = []

    def __call__(self, argv, timeout):
        self.calls.append(list(argv))
        if self.error is not None:
            raise self.error
        return self.output


INSTANCE_JSON = json.dumps(
    {
        "name": "vm1",
        "zone": "projects/p/zones/us-central1-a",
        "machineType": "n2-standard-2",
        "status": "RUNNING",
        "disks": [
            {"deviceName": "persistent-disk-0", "source": "projects/p/zones/us-central1-a/disks/boot",
             "mode": "READ_WRITE", "type": "PERSISTENT"},
            {"deviceName": "data", "source": "projects/p/zones/us-central1-a/disks/data1",
             "mode": "READ_WRITE", "type": "PERSISTENT"},
        ],
        "networkInterfaces": [{"networkIP": "10.0.0.2"}],
        "unknownField": 1,
    }
)


def test_get_instance_runs_describe_and_parses():
    runner = FakeRunner(INSTANCE_JSON)
    client = GcloudClient("my-project", runner=runner)
    instance = client.get_instance("us-central1-a", "vm1")
    assert runner.calls == [[
        "gcloud", "compute", "instances", "describe", "vm1",
        "--zone", "us-central1-a", "--project", "my-project", "--format", "json",
    ]]
    assert instance.name == "vm1"
    assert instance.status == "RUNNING"
    assert instance.machine_type == "n2-standard-2"
    assert instance.network_ips == ["10.0.0.2"]
    assert instance.disks[1] == AttachedDisk(
        device_name="data",
        source="projects/p/zones/us-central1-a/disks/data1",
        mode="READ_WRITE",
        type="PERSISTENT",
    )


def test_get_instance_command_failure():
    runner = FakeRunner(error=subprocess.CalledProcessError(1, ["gcloud"]))
    client = GcloudClient("p", runner=runner)
    with pytest.raises(GcloudError, match="failed to get instance"):
        client.get_instance("z", "vm")


def test_get_instance_bad_json():
    client = GcloudClient("p", runner=FakeRunner("not json"))
    with pytest.raises(GcloudError, match="failed to parse instance data"):
        client.get_instance("z", "vm")


def test_get_disk_and_regional_disk():
    payload = json.dumps(
        {"name": "d1", "zone": "z", "type": "pd-ssd", "status": "READY", "sizeGb": "10",
         "labels": {"env": "test"}, "users": []}
    )
    runner = FakeRunner(payload)
    client = GcloudClient("p", runner=runner)
    disk = client.get_disk("us-central1-a", "d1")
    regional = client.get_regional_disk("us-central1", "d1")
    assert disk == DiskInfo(name="d1", zone="z", type="pd-ssd", status="READY",
                            size_gb="10", labels={"env": "test"}, users=[])
    assert regional == disk
    assert runner.calls[0][5:7] == ["--zone", "us-central1-a"]
    assert runner.calls[1][5:7] == ["--region", "us-central1"]


def test_get_regional_disk_failure_message():
    client = GcloudClient("p", runner=FakeRunner(error=OSError("no gcloud")))
    with pytest.raises(GcloudError, match="failed to get regional disk"):
        client.get_regional_disk("r", "d")


def test_list_disks_with_filters():
    runner = FakeRunner(json.dumps([{"name": "a"}, {"name": "b", "users": ["vm"]}]))
    client = GcloudClient("p", runner=runner)
    disks = client.list_disks("us-central1-a", "env=prod")
    assert [d.name for d in disks] == ["a", "b"]
    assert disks[1].users == ["vm"]
    assert runner.calls[0] == [
        "gcloud", "compute", "disks", "list", "--project", "p", "--format", "json",
        "--filter", "zone:(us-central1-a)", "--filter", "labels.env=prod",
    ]


def test_list_disks_without_filters_and_null_output():
    runner = FakeRunner("null")
    client = GcloudClient("p", runner=runner)
    assert client.list_disks() == []
    assert "--filter" not in runner.calls[0]


def test_list_disks_rejects_non_array():
    client = GcloudClient("p", runner=FakeRunner(json.dumps({"name": "a"})))
    with pytest.raises(GcloudError, match="failed to parse disks data"):
        client.list_disks()


def test_stop_and_start_instance():
    runner = FakeRunner()
    client = GcloudClient("p", runner=runner)
    client.stop_instance("z", "vm")
    client.start_instance("z", "vm")
    assert runner.calls == [
        ["gcloud", "compute", "instances", "stop", "vm", "--zone", "z", "--project", "p"],
        ["gcloud", "compute", "instances", "start", "vm", "--zone", "z", "--project", "p"],
    ]


def test_stop_instance_failure():
    client = GcloudClient("p", runner=FakeRunner(error=subprocess.TimeoutExpired("gcloud", 1)))
    with pytest.raises(GcloudError, match="failed to stop instance"):
        client.stop_instance("z", "vm")


def test_extract_disk_name_from_source():
    source = "https://www.googleapis.com/compute/v1/projects/p/zones/us-central1-a/disks/d1"
    assert extract_disk_name_from_source(source) == "d1"
    assert extract_disk_name_from_source("plain") == "plain"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("https://www.googleapis.com/compute/v1/projects/p/zones/us-central1-a/disks/d1", "us-central1-a"),
        ("projects/p/regions/us-central1/disks/d1", ""),
        ("projects/p/zones", ""),
    ],
)
def test_extract_zone_from_path(path, expected):
    assert extract_zone_from_path(path) == expected