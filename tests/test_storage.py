from io import BytesIO

import pytest
from fastapi import UploadFile

from school_attendance.core.exceptions import ServiceError, ValidationError
from school_attendance.core.storage import EvidenceStorage


def test_validate_extension_and_size(tmp_path) -> None:
    storage = EvidenceStorage(tmp_path, max_bytes=10)
    assert storage.validate("scan.JPG", 5) == "jpg"
    with pytest.raises(ValidationError):
        storage.validate("notes.txt", 5)
    with pytest.raises(ValidationError):
        storage.validate("scan.pdf", 11)
    with pytest.raises(ValidationError):
        storage.validate("scan.pdf", 0)


def test_store_and_delete(tmp_path) -> None:
    storage = EvidenceStorage(tmp_path)
    path = storage.store(b"data", "pdf")
    assert path.startswith("leave-requests/")
    assert storage.exists(path)
    assert storage.delete(path) is True
    assert storage.delete(path) is False


def test_resolve_rejects_traversal(tmp_path) -> None:
    storage = EvidenceStorage(tmp_path / "store")
    with pytest.raises(ValidationError):
        storage.resolve("../outside.pdf")


@pytest.mark.asyncio
async def test_staged_removes_file_when_block_fails(tmp_path) -> None:
    storage = EvidenceStorage(tmp_path)
    upload = UploadFile(file=BytesIO(b"%PDF"), filename="note.pdf")
    stored = None
    with pytest.raises(ServiceError):
        async with storage.staged(upload) as path:
            stored = path
            assert storage.exists(path)
            raise ServiceError("database write failed")
    assert stored is not None
    assert not storage.exists(stored)


@pytest.mark.asyncio
async def test_staged_keeps_file_on_success(tmp_path) -> None:
    storage = EvidenceStorage(tmp_path)
    upload = UploadFile(file=BytesIO(b"\x89PNG"), filename="scan.png")
    async with storage.staged(upload) as path:
        pass
    assert path.endswith(".png")
    assert storage.exists(path)


@pytest.mark.asyncio
async def test_staged_without_upload_yields_none(tmp_path) -> None:
    storage = EvidenceStorage(tmp_path)
    async with storage.staged(None) as path:
        assert path is None
