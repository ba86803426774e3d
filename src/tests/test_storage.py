from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from lostlibrary.errors import StorageUnavailable
from lostlibrary.storage import DeviceStorage


def test_missing_file_reads_as_empty(storage):
    assert storage.get("anything") is None


def test_set_get_remove(storage):
    storage.set("a", "1")
    storage.set("b", "2")
    assert storage.get("a") == "1"

    storage.remove("a")
    storage.remove("a")
    assert storage.get("a") is None
    assert storage.get("b") == "2"


def test_values_survive_a_new_instance(storage):
    storage.set("key", "value")
    assert DeviceStorage(storage.path).get("key") == "value"


def test_clear(storage):
    storage.set("a", "1")
    storage.clear()
    assert storage.get("a") is None


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json")
    with pytest.raises(StorageUnavailable):
        DeviceStorage(str(path)).get("a")


def test_non_object_file_raises(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2]")
    with pytest.raises(StorageUnavailable):
        DeviceStorage(str(path)).set("a", "1")


def test_unwritable_location_raises(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(StorageUnavailable):
        DeviceStorage(str(blocker / "storage.json")).set("a", "1")


def test_undecodable_file_raises(tmp_path):
    path = tmp_path / "storage.json"
    path.write_bytes(b'{"lostlibrary.accounts": "\xff\xfe"}')
    with pytest.raises(StorageUnavailable):
        DeviceStorage(str(path)).get("lostlibrary.accounts")


def test_failed_write_leaves_no_temp_file(storage, tmp_path):
    storage.set("a", "1")
    with patch("lostlibrary.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(StorageUnavailable):
            storage.set("b", "2")

    assert [p.name for p in tmp_path.iterdir()] == ["storage.json"]
    assert storage.get("b") is None


def test_concurrent_writers_keep_each_others_keys(storage):
    def write_many(prefix):
        for i in range(25):
            storage.set(f"{prefix}.{i}", str(i))

    threads = [threading.Thread(target=write_many, args=(p,)) for p in ("accounts", "favorites")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for prefix in ("accounts", "favorites"):
        assert all(storage.get(f"{prefix}.{i}") == str(i) for i in range(25))
