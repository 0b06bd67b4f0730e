import pytest

from pdmigrate.gcp.disks import DiskClient, supports_iops_and_throughput
from pdmigrate.gcp.operations import GcpOperationError
from pdmigrate.logs.unified import setup

PROJECT = "test-project"
ZONE = "us-central1-a"
FULL_ZONE = "projects/" + PROJECT + "/zones/" + ZONE


class FakeOperation:
    def __init__(self, name="operation-1", error=None):
        self.name = name
        self.error = error

    def wait(self, timeout=None):
        if self.error is not None:
            raise self.error


class FailingPages:
    """Iterator that yields the given pages and then raises."""

    def __init__(self, pages, error):
        self._pages = list(pages)
        self._error = error

    def __iter__(self):
        return self

    def __next__(self):
        if self._pages:
            return self._pages.pop(0)
        raise self._error


class FakeDisksApi:
    def __init__(self):
        self.calls = []
        self.disk = None
        self.get_error = None
        self.pages = []
        self.insert_error = None
        self.set_labels_error = None
        self.delete_error = None
        self.wait_error = None
        self.closed = False

    def get(self, *, project, zone, disk):
        self.calls.append(("get", project, zone, disk))
        if self.get_error:
            raise self.get_error
        return self.disk

    def aggregated_list(self, *, project):
        self.calls.append(("aggregated_list", project))
        return self.pages

    def insert(self, *, project, zone, disk_resource):
        self.calls.append(("insert", project, zone, disk_resource))
        if self.insert_error:
            raise self.insert_error
        return FakeOperation(error=self.wait_error)

    def set_labels(self, *, project, zone, resource, labels, label_fingerprint):
        self.calls.append(("set_labels", project, zone, resource, labels, label_fingerprint))
        if self.set_labels_error:
            raise self.set_labels_error
        return FakeOperation(error=self.wait_error)

    def delete(self, *, project, zone, disk):
        self.calls.append(("delete", project, zone, disk))
        if self.delete_error:
            raise self.delete_error
        return FakeOperation(error=self.wait_error)

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def _logging():
    setup(False, False, False)


@pytest.fixture
def api():
    return FakeDisksApi()


@pytest.fixture
def client(api):
    return DiskClient(api)


@pytest.mark.parametrize(
    "disk_type,expected",
    [
        ("pd-extreme", True),
        ("hyperdisk-balanced", True),
        ("hyperdisk-extreme", True),
        ("hyperdisk-ml", True),
        ("pd-ssd", False),
        ("pd-balanced", False),
        ("pd-standard", False),
    ],
)
def test_supports_iops_and_throughput(disk_type, expected):
    assert supports_iops_and_throughput(disk_type) is expected


def _disk(name, zone=FULL_ZONE, status="READY", users=None):
    return {"name": name, "zone": zone, "status": status, "users": users or []}


def test_list_detached_disks_empty(api, client):
    assert client.list_detached_disks(PROJECT, ZONE, "") == []
    assert api.calls == [("aggregated_list", PROJECT)]


def test_list_detached_disks_filters(api, client):
    api.pages = [
        (
            "zones/" + ZONE,
            {
                "disks": [
                    _disk("keep"),
                    _disk("attached", users=["projects/p/zones/z/instances/vm1"]),
                    _disk("creating", status="CREATING"),
                    _disk("other-zone", zone="projects/p/zones/us-east1-b"),
                ]
            },
        ),
        ("zones/us-west1-a", {}),
        ("zones/us-west1-b", {"disks": [_disk("keep-too")]}),
    ]
    result = client.list_detached_disks(PROJECT, ZONE, "")
    assert [d["name"] for d in result] == ["keep", "keep-too"]


def test_list_detached_disks_full_zone_path_matches_nothing(api, client):
    api.pages = [("zones/" + ZONE, {"disks": [_disk("keep")]})]
    assert client.list_detached_disks(PROJECT, FULL_ZONE, "") == []


def test_list_detached_disks_nil_iterator(api, client):
    api.pages = None
    assert client.list_detached_disks(PROJECT, ZONE, "") == []


def test_list_detached_disks_error(api, client):
    cause = RuntimeError("list failed")
    api.pages = FailingPages([("zones/" + ZONE, {"disks": [_disk("keep")]})], cause)
    with pytest.raises(GcpOperationError) as info:
        client.list_detached_disks(PROJECT, FULL_ZONE, "")
    assert str(info.value) == "failed to list disks: list failed"
    assert info.value.__cause__ is cause


def test_get_disk_success(api, client):
    api.disk = {"name": "test-disk", "zone": ZONE}
    assert client.get_disk(PROJECT, ZONE, "test-disk") == {"name": "test-disk", "zone": ZONE}
    assert api.calls == [("get", PROJECT, ZONE, "test-disk")]


def test_get_disk_error(api, client):
    cause = RuntimeError("get disk failed")
    api.get_error = cause
    with pytest.raises(GcpOperationError) as info:
        client.get_disk(PROJECT, ZONE, "test-disk")
    assert str(info.value) == "failed to get disk test-disk in zone us-central1-a: get disk failed"
    assert info.value.__cause__ is cause


def test_create_disk_standard_type(api, client):
    pool = "projects/project/zones/zone/storagePools/storagePool"
    client.create_new_disk_from_snapshot(
        PROJECT, ZONE, "new-disk", "pd-ssd", "snap-1", {"env": "test"}, 0, 0, 0, pool
    )
    (call,) = api.calls
    assert call[:3] == ("insert", PROJECT, ZONE)
    assert call[3] == {
        "name": "new-disk",
        "type": "zones/us-central1-a/diskTypes/pd-ssd",
        "sourceSnapshot": "global/snapshots/snap-1",
        "labels": {"env": "test"},
        "sizeGb": 0,
        "storagePool": pool,
    }


def test_create_disk_hyperdisk_sets_performance(api, client):
    client.create_new_disk_from_snapshot(
        PROJECT, ZONE, "new-disk", "hyperdisk-balanced",
        "projects/p/global/snapshots/s", {"env": "test"}, 100, 3000, 140, "",
    )
    (call,) = api.calls
    assert call[:3] == ("insert", PROJECT, ZONE)
    assert call[3] == {
        "name": "new-disk",
        "type": "zones/us-central1-a/diskTypes/hyperdisk-balanced",
        "sourceSnapshot": "projects/p/global/snapshots/s",
        "labels": {"env": "test"},
        "provisionedIops": 3000,
        "provisionedThroughput": 140,
        "sizeGb": 100,
    }


def test_create_disk_insert_error(api, client):
    api.insert_error = RuntimeError("create disk failed")
    with pytest.raises(GcpOperationError) as info:
        client.create_new_disk_from_snapshot(
            PROJECT, ZONE, "new-disk", "pd-ssd", "snap-1", {"env": "test"}, 0, 0, 0, ""
        )
    assert str(info.value) == "failed to initiate creation for disk new-disk: create disk failed"


def test_create_disk_wait_error(api, client):
    cause = TimeoutError("too slow")
    api.wait_error = cause
    with pytest.raises(GcpOperationError) as info:
        client.create_new_disk_from_snapshot(
            PROJECT, ZONE, "new-disk", "pd-ssd", "snap-1", {}, 0, 0, 0, ""
        )
    assert str(info.value) == "waiting for disk new-disk creation failed: too slow"
    assert info.value.__cause__ is cause


def test_update_disk_label_adds_label(api, client):
    api.disk = {"name": "test-disk", "labels": {"env": "test"}, "labelFingerprint": "fp1"}
    client.update_disk_label(PROJECT, ZONE, "test-disk", "status", "updated")
    assert api.calls[-1] == (
        "set_labels", PROJECT, ZONE, "test-disk",
        {"env": "test", "status": "updated"}, "fp1",
    )
    assert api.disk["labels"] == {"env": "test"}


def test_update_disk_label_updates_existing(api, client):
    api.disk = {"name": "test-disk", "labels": {"status": "old"}}
    client.update_disk_label(PROJECT, ZONE, "test-disk", "status", "updated")
    assert api.calls[-1] == (
        "set_labels", PROJECT, ZONE, "test-disk", {"status": "updated"}, "",
    )


def test_update_disk_label_handles_no_labels(api, client):
    api.disk = {"name": "test-disk"}
    client.update_disk_label(PROJECT, ZONE, "test-disk", "status", "updated")
    assert api.calls[-1] == (
        "set_labels", PROJECT, ZONE, "test-disk", {"status": "updated"}, "",
    )


def test_update_disk_label_get_error(api, client):
    api.get_error = RuntimeError("boom")
    with pytest.raises(GcpOperationError) as info:
        client.update_disk_label(PROJECT, ZONE, "test-disk", "status", "updated")
    assert str(info.value) == "failed to get current disk state before setting label: boom"


def test_update_disk_label_set_error(api, client):
    api.disk = {"name": "test-disk"}
    api.set_labels_error = RuntimeError("update label failed")
    with pytest.raises(GcpOperationError) as info:
        client.update_disk_label(PROJECT, ZONE, "test-disk", "status", "updated")
    assert str(info.value) == "failed to initiate set label for disk test-disk: update label failed"


def test_delete_disk_success(api, client):
    client.delete_disk(PROJECT, ZONE, "disk-to-delete")
    assert api.calls == [("delete", PROJECT, ZONE, "disk-to-delete")]


def test_delete_disk_error(api, client):
    api.delete_error = RuntimeError("delete failed")
    with pytest.raises(GcpOperationError) as info:
        client.delete_disk(PROJECT, ZONE, "disk-to-delete")
    assert str(info.value) == "failed to initiate deletion for disk disk-to-delete: delete failed"


def test_delete_disk_wait_error(api, client):
    api.wait_error = RuntimeError("gone wrong")
    with pytest.raises(GcpOperationError) as info:
        client.delete_disk(PROJECT, ZONE, "disk-to-delete")
    assert str(info.value) == "waiting for disk disk-to-delete deletion failed: gone wrong"


def test_close_and_context_manager(api):
    with DiskClient(api) as client:
        client.delete_disk(PROJECT, ZONE, "d")
    assert api.closed is True