"""
Path-addressed blob store for leave request evidence files.

Paths handed out by the store are relative (``leave-requests/<uuid>.pdf``)
and are what gets persisted on the database row.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional, Union

from fastapi import UploadFile

from school_attendance.core.config import settings
from school_attendance.core.exceptions import ServiceError, ValidationError

logger = logging.getLogger(__name__)

EVIDENCE_FOLDER = "leave-requests"


class EvidenceStorage:
    def __init__(
        self,
        root: Union[str, Path],
        max_bytes: int = 5 * 1024 * 1024,
        allowed_extensions: Iterable[str] = ("pdf", "jpg", "jpeg", "png"),
    ) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes
        self.allowed_extensions = {ext.lower().lstrip(".") for ext in allowed_extensions}

    def resolve(self, path: str) -> Path:
        """Absolute location of a stored path. Rejects paths escaping the store root."""
        root = self.root.resolve()
        full = (root / path).resolve()
        if root != full and root not in full.parents:
            raise ValidationError("Invalid evidence file path", field="evidence_file")
        return full

    def validate(self, filename: Optional[str], size: int) -> str:
        """Check type and size of an upload; returns the normalised extension."""
        extension = Path(filename or "").suffix.lower().lstrip(".")
        if extension not in self.allowed_extensions:
            allowed = ", ".join(sorted(self.allowed_extensions))
            raise ValidationError(f"Evidence must be one of: {allowed}", field="evidence_file")
        if size == 0:
            raise ValidationError("Evidence file is empty", field="evidence_file")
        if size > self.max_bytes:
            raise ValidationError(
                f"Evidence file cannot be larger than {self.max_bytes // (1024 * 1024)}MB",
                field="evidence_file",
            )
        return extension

    def store(self, content: bytes, extension: str, folder: str = EVIDENCE_FOLDER) -> str:
        path = f"{folder}/{uuid.uuid4().hex}.{extension}"
        full = self.resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        try:
            full.write_bytes(content)
        except OSError as e:
            # Never leave a half-written file behind
            full.unlink(missing_ok=True)
            logger.error("Failed to store evidence file %s", path, exc_info=True)
            raise ServiceError("Could not store evidence file") from e
        return path

    def delete(self, path: str) -> bool:
        """Delete a stored file. False if it was already gone; OSError propagates otherwise."""
        full = self.resolve(path)
        try:
            full.unlink()
        except FileNotFoundError:
            return False
        return True

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    @asynccontextmanager
    async def staged(self, upload: Optional[UploadFile]) -> AsyncIterator[Optional[str]]:
        """
        Store an upload for the duration of a block.

        Yields the stored path (None when there is no upload). If the block
        raises, e.g. because the database write that should reference the
        file failed, the file is removed again before the error propagates.
        """
        if upload is None or not upload.filename:
            yield None
            return

        content = await upload.read(self.max_bytes + 1)
        extension = self.validate(upload.filename, len(content))
        path = self.store(content, extension)
        try:
            yield path
        except BaseException:
            try:
                self.delete(path)
            except OSError:
                logger.error("Failed to clean up orphaned evidence file %s", path, exc_info=True)
            raise


def get_evidence_storage() -> EvidenceStorage:
    return EvidenceStorage(
        settings.evidence_storage_dir,
        max_bytes=settings.evidence_max_bytes,
        allowed_extensions=settings.evidence_allowed_extensions,
    )
