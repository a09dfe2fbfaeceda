from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from fileshare.models import FileEntry, UploadedFile


class FileEntryOut(BaseModel):
    name: str
    path: str
    isDir: bool
    size: Optional[int]
    displaySize: str
    url: str
    zipUrl: str
    modified: datetime

    @classmethod
    def from_entry(cls, entry: FileEntry) -> "FileEntryOut":
        return cls(
            name=entry.name,
            path=entry.url.lstrip("/"),
            isDir=entry.is_dir,
            size=entry.size,
            displaySize=entry.display_size,
            url=entry.url,
            zipUrl=entry.zip_url,
            modified=entry.modified,
        )


class UploadedFileOut(BaseModel):
    name: str
    size: int

    @classmethod
    def from_upload(cls, upload: UploadedFile) -> "UploadedFileOut":
        return cls(name=upload.name, size=upload.size)


class UploadResponse(BaseModel):
    success: bool
    count: int
    uploaded: List[UploadedFileOut]
    failed: List[str] = []
