"""
Thin Google Cloud Storage wrapper used by the GCS-backed clinic store.
Every document is a JSON blob; the bucket client is created lazily.
"""

import json
import logging
import os

from google.cloud import storage
from google.cloud.exceptions import NotFound

logger = logging.getLogger("infrastructure.gcs")


class GCSBucketManager:
    # HTTP timeout for individual GCS operations (seconds)
    GCS_TIMEOUT = 30

    def __init__(self, bucket_name, service_account_json_path=None):
        """
        :param bucket_name: Bucket holding the clinic documents.
        :param service_account_json_path: Optional key file; falls back to
                                          application default credentials.
        """
        self.bucket_name = bucket_name
        self.service_account_json_path = service_account_json_path
        self._client = None
        self._bucket = None

    def _ensure_initialized(self):
        """Lazy initialization of GCS client and bucket"""
        if self._client is None:
            project_id = os.getenv("PROJECT_ID")
            try:
                if self.service_account_json_path:
                    self._client = storage.Client.from_service_account_json(
                        self.service_account_json_path,
                        project=project_id,
                    )
                else:
                    self._client = storage.Client(project=project_id)
                self._bucket = self._client.bucket(self.bucket_name)
                logger.info("Connected to GCS bucket: %s", self.bucket_name)
            except Exception as e:
                logger.error("Error initializing GCS client: %s", e)
                raise

    @property
    def client(self):
        self._ensure_initialized()
        return self._client

    @property
    def bucket(self):
        self._ensure_initialized()
        return self._bucket

    def read_json(self, blob_name):
        """Return the decoded document, or None if the blob does not exist."""
        try:
            blob = self.bucket.blob(blob_name)
            content = blob.download_as_text(timeout=self.GCS_TIMEOUT)
        except NotFound:
            return None
        return json.loads(content)

    def write_json(self, blob_name, content):
        blob = self.bucket.blob(blob_name)
        blob.upload_from_string(
            content if isinstance(content, str) else json.dumps(content),
            content_type="application/json",
            timeout=self.GCS_TIMEOUT,
        )

    def delete(self, blob_name):
        try:
            self.bucket.blob(blob_name).delete(timeout=self.GCS_TIMEOUT)
            return True
        except NotFound:
            logger.warning("Blob %s not found", blob_name)
            return False

    def list_names(self, prefix):
        """Full blob names under ``prefix`` (recursive)."""
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        blobs = self.client.list_blobs(self.bucket_name, prefix=prefix)
        return [blob.name for blob in blobs if blob.name.endswith(".json")]
