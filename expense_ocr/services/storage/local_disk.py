"""Filesystem storage used when no S3 endpoint is configured."""

import logging
from pathlib import Path

from expense_ocr.pipeline.core.exceptions import StorageError
from expense_ocr.pipeline.utils.io_utils import write_bytes_once
from expense_ocr.services.storage.base import StoredObject, build_object_key

logger = logging.getLogger(__name__)


class LocalDiskStorage:
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError("resolve", key, "key escapes the storage root")
        return path

    def upload(
        self,
        data: bytes,
        organization_id: str,
        folder: str,
        file_name: str,
        content_type: str,
    ) -> StoredObject:
        key = build_object_key(organization_id, folder, file_name, content_type)
        path = self._path(key)
        try:
            write_bytes_once(path, data)
        except OSError as e:
            raise StorageError("upload", key, str(e)) from e
        logger.info(f"Stored {key} on local disk ({len(data)} bytes)")
        return StoredObject(url=path.as_uri(), key=key, size=len(data))

    def download(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise StorageError("download", key, str(e)) from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError("delete", key, str(e)) from e
