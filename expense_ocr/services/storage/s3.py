"""MinIO S3 storage for uploaded documents."""

import io
import logging
import ssl
from typing import Optional

import urllib3
from minio import Minio
from minio.error import S3Error

from expense_ocr.pipeline.core.exceptions import StorageError
from expense_ocr.services.storage.base import StoredObject, build_object_key

logger = logging.getLogger(__name__)


class S3Storage:
    """Upload, download and delete objects in one bucket."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = True,
        region: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client: Optional[Minio] = None,
    ):
        """
        Args:
            endpoint: S3 endpoint (e.g., "minio.internal:9000")
            access_key: S3 access key
            secret_key: S3 secret key
            bucket: S3 bucket name
            secure: Use HTTPS (default: True)
            region: Bucket region; skips the region lookup when set
            public_base_url: Base for object URLs; defaults to the endpoint
            client: Preconfigured Minio client (tests)
        """
        self.bucket = bucket
        self.endpoint = endpoint
        scheme = "https" if secure else "http"
        self.public_base_url = (public_base_url or f"{scheme}://{endpoint}/{bucket}").rstrip("/")

        if client is None:
            http_client = urllib3.PoolManager(
                cert_reqs=ssl.CERT_NONE,
                assert_hostname=False,
            )
            client = Minio(
                endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
                region=region,
                http_client=http_client,
            )
        self.client = client

        logger.info(f"S3Storage initialized: endpoint={endpoint}, bucket={bucket}")

    def ensure_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket):
                self.client.make_bucket(bucket_name=self.bucket)
                logger.info(f"Created bucket {self.bucket}")
        except (S3Error, urllib3.exceptions.HTTPError) as e:
            raise StorageError("ensure_bucket", self.bucket, str(e)) from e

    def upload(
        self,
        data: bytes,
        organization_id: str,
        folder: str,
        file_name: str,
        content_type: str,
    ) -> StoredObject:
        key = build_object_key(organization_id, folder, file_name, content_type)
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata={"original-name": file_name.encode("ascii", "ignore").decode()},
            )
        except (S3Error, urllib3.exceptions.HTTPError) as e:
            logger.error(f"S3 error uploading {key}: {e}", extra={"service": "STORAGE"})
            raise StorageError("upload", key, str(e)) from e

        logger.info(
            f"Uploaded S3 object: key={key}, size={len(data)} bytes",
            extra={"organization_id": organization_id},
        )
        return StoredObject(url=f"{self.public_base_url}/{key}", key=key, size=len(data))

    def download(self, key: str) -> bytes:
        response = None
        try:
            response = self.client.get_object(bucket_name=self.bucket, object_name=key)
            data = response.read()
        except (S3Error, urllib3.exceptions.HTTPError) as e:
            logger.error(f"S3 error downloading {key}: {e}", extra={"service": "STORAGE"})
            raise StorageError("download", key, str(e)) from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

        logger.info(f"Downloaded S3 object: key={key}, size={len(data)} bytes")
        return data

    def delete(self, key: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=key)
        except (S3Error, urllib3.exceptions.HTTPError) as e:
            raise StorageError("delete", key, str(e)) from e
        logger.info(f"Deleted S3 object: key={key}")
