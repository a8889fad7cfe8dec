"""Object storage port shared by the API (upload) and the worker (download)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol

from expense_ocr.pipeline.utils.file_detection import extension_for


@dataclass(frozen=True)
class StoredObject:
    url: str
    key: str
    size: int


class StoragePort(Protocol):
    """
    Blocking storage interface. Callers on the event loop go through
    ``asyncio.to_thread``.

    Every method raises :class:`StorageError` on failure.
    """

    def upload(
        self,
        data: bytes,
        organization_id: str,
        folder: str,
        file_name: str,
        content_type: str,
    ) -> StoredObject: ...

    def download(self, key: str) -> bytes: ...

    def delete(self, key: str) -> None: ...


def build_object_key(organization_id: str, folder: str, file_name: str, content_type: str) -> str:
    """``{organization_id}/{folder}/{uuid}.{ext}``; the user's file name never reaches the key."""
    return f"{organization_id}/{folder}/{uuid.uuid4()}.{extension_for(content_type, file_name)}"
