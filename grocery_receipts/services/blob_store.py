"""
Key-addressed blob storage backed by Google Cloud Storage.
"""
from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Optional, Protocol

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from grocery_receipts.errors import UpstreamError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def upload(self, key: str, data: bytes, content_type: str, metadata: Optional[dict] = None) -> None: ...

    def download(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...

    def copy(self, source_key: str, target_key: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def signed_url(self, key: str, expires_in: timedelta) -> str: ...


class GCSBlobStore:
    def __init__(self, bucket_name: str, credentials_json: str = ""):
        """
        Connects to the bucket, using explicit service account credentials
        when given and application default credentials otherwise.
        """
        try:
            if credentials_json:
                self.client = storage.Client.from_service_account_info(json.loads(credentials_json))
            else:
                self.client = storage.Client()
            self.bucket_name = bucket_name
            self.bucket = self.client.bucket(bucket_name)
        except (ValueError, gcs_exceptions.GoogleAPIError) as e:
            raise UpstreamError(f"Failed to connect to GCS bucket {bucket_name}: {e}") from e
        logger.info("Using GCS bucket: %s", bucket_name)

    def upload(self, key: str, data: bytes, content_type: str, metadata: Optional[dict] = None) -> None:
        blob = self.bucket.blob(key)
        if metadata:
            blob.metadata = metadata
        try:
            blob.upload_from_string(data, content_type=content_type)
        except gcs_exceptions.GoogleAPIError as e:
            raise UpstreamError(f"Upload of {key} failed: {e}") from e
        logger.info("Uploaded gs://%s/%s (%d bytes)", self.bucket_name, key, len(data))

    def download(self, key: str) -> bytes:
        try:
            return self.bucket.blob(key).download_as_bytes()
        except gcs_exceptions.NotFound as e:
            raise UpstreamError(f"Blob not found: {key}") from e
        except gcs_exceptions.GoogleAPIError as e:
            raise UpstreamError(f"Download of {key} failed: {e}") from e

    def exists(self, key: str) -> bool:
        try:
            return self.bucket.blob(key).exists()
        except gcs_exceptions.GoogleAPIError as e:
            raise UpstreamError(f"Existence check for {key} failed: {e}") from e

    def copy(self, source_key: str, target_key: str) -> None:
        try:
            self.bucket.copy_blob(self.bucket.blob(source_key), self.bucket, target_key)
        except gcs_exceptions.GoogleAPIError as e:
            raise UpstreamError(f"Copy {source_key} -> {target_key} failed: {e}") from e
        logger.info("Copied %s -> %s", source_key, target_key)

    def delete(self, key: str) -> None:
        try:
            self.bucket.blob(key).delete()
        except gcs_exceptions.NotFound:
            logger.info("Blob already gone: %s", key)
        except gcs_exceptions.GoogleAPIError as e:
            raise UpstreamError(f"Delete of {key} failed: {e}") from e

    def signed_url(self, key: str, expires_in: timedelta) -> str:
        # V4 signatures cap expiry at 7 days; long-lived URLs need V2
        version = "v4" if expires_in <= timedelta(days=7) else "v2"
        try:
            return self.bucket.blob(key).generate_signed_url(
                version=version,
                expiration=expires_in,
                method="GET",
            )
        except (ValueError, AttributeError, gcs_exceptions.GoogleAPIError) as e:
            raise UpstreamError(f"Signing URL for {key} failed: {e}") from e
