"""Disk storage policy for multipart uploads.

A `DiskStorage` maps every uploaded file to a fixed destination directory
and keeps the client's original file name. Resolution is a pure function
of the upload descriptor; `save()` is the only part touching the disk.

Files with the same name overwrite each other (last write wins) and names
are used exactly as the client sent them.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from fastapi import UploadFile

from .core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DESTINATION = Path("public/assets")


@dataclass(frozen=True)
class UploadDescriptor:
    """What the storage policy knows about one incoming file."""
    field_name: str
    original_name: str
    content_type: Optional[str] = None

    @classmethod
    def from_upload(cls, upload: UploadFile, field_name: str = "file") -> "UploadDescriptor":
        return cls(
            field_name=field_name,
            original_name=upload.filename or "",
            content_type=upload.content_type,
        )


@dataclass(frozen=True)
class StorageTarget:
    destination: Path
    filename: str

    @property
    def path(self) -> Path:
        return self.destination / self.filename


class DiskStorage:
    def __init__(self, destination: Union[str, Path] = DEFAULT_DESTINATION):
        self._destination = Path(destination)

    def destination(self, request: Any, file: UploadDescriptor) -> Path:
        """Directory for the file: always the configured one."""
        return self._destination

    def filename(self, request: Any, file: UploadDescriptor) -> str:
        """Name on disk: the client-declared original name, unmodified."""
        return file.original_name

    def resolve(self, request: Any, file: UploadDescriptor) -> StorageTarget:
        return StorageTarget(
            destination=self.destination(request, file),
            filename=self.filename(request, file),
        )

    async def save(self, request: Any, upload: UploadFile, field_name: str = "file") -> StorageTarget:
        """Write `upload` to its resolved target. The directory must already exist."""
        target = self.resolve(request, UploadDescriptor.from_upload(upload, field_name))
        content = await upload.read()
        target.path.write_bytes(content)
        logger.info("upload_stored", path=str(target.path), size=len(content), mime=upload.content_type)
        return target
