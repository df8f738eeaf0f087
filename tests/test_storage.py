# tests/test_storage.py
from pathlib import Path

import pytest

from expense_desk.errors import StorageError
from expense_desk.services.storage import LocalReceiptStorage


@pytest.fixture()
def local_storage(tmp_path):
    return LocalReceiptStorage(tmp_path, "receipts-test")


def test_put_get_delete(local_storage, tmp_path):
    key = "receipts/2026/abc-def.pdf"
    local_storage.put(key, b"%PDF-1.7", "application/pdf")
    assert (tmp_path / "receipts-test" / key).read_bytes() == b"%PDF-1.7"

    stored = local_storage.get(key)
    assert stored.content_type == "application/pdf"
    assert stored.content_length == 8
    assert b"".join(stored.body) == b"%PDF-1.7"

    local_storage.delete(key)
    assert local_storage.get(key) is None
    # deleting twice is fine
    local_storage.delete(key)


def test_missing_key_returns_none(local_storage):
    assert local_storage.get("receipts/2026/nope.png") is None


def test_keys_cannot_escape_the_bucket(local_storage):
    with pytest.raises(StorageError):
        local_storage.put("../../outside.txt", b"x", "text/plain")
    with pytest.raises(StorageError):
        local_storage.get("../other-bucket/file.pdf")


def test_body_opens_the_file_only_when_read(local_storage, monkeypatch):
    key = "receipts/2026/lazy.png"
    local_storage.put(key, b"\x89PNG", "image/png")

    binary_opens = []
    real_open = Path.open

    def recording_open(self, mode="r", *args, **kwargs):
        if mode == "rb":
            binary_opens.append(self.name)
        return real_open(self, mode, *args, **kwargs)

    monkeypatch.setattr(Path, "open", recording_open)

    stored = local_storage.get(key)
    assert binary_opens == []
    stored.body.close()  # dropped before streaming
    assert binary_opens == []

    stored = local_storage.get(key)
    assert b"".join(stored.body) == b"\x89PNG"
    assert binary_opens == ["lazy.png"]
