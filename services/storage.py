import logging
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import config

logger = logging.getLogger(__name__)

REPORT_CONTENT_TYPE = "application/json"
_MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}

# --- Blob Backend Implementations ---

class _InMemoryBlobBackend:
    """Keeps uploaded blobs in a dict, used by tests."""
    def __init__(self):
        self._blobs: dict[tuple[str, str], str] = {}

    def put(self, bucket: str, key: str, content: str, content_type: str):
        logger.debug("blob mock put: %s/%s (%s)", bucket, key, content_type)
        self._blobs[(bucket, key)] = content

    def get(self, bucket: str, key: str) -> str | None:
        return self._blobs.get((bucket, key))

class FileSystemBlobBackend:
    """Local development backend, stores blobs as files under `<root>/<bucket>/<key>`."""
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, bucket: str, key: str) -> Path:
        path = (self.root / bucket / key).resolve()
        # keys are caller supplied, keep them inside the bucket directory
        if not path.is_relative_to((self.root / bucket).resolve()):
            raise ValueError(f"Blob key escapes bucket {bucket}: {key}")
        return path

    def put(self, bucket: str, key: str, content: str, content_type: str):
        path = self._path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug("blob file put: %s (%s)", path, content_type)

    def get(self, bucket: str, key: str) -> str | None:
        path = self._path(bucket, key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

class S3BlobBackend:
    """Real implementation on Amazon S3 (or an S3 compatible endpoint) through boto3."""
    def __init__(self, region: str | None = None, endpoint_url: str | None = None, client=None):
        if client is not None:
            self.client = client
            return
        try:
            # default credential chain: env, shared config, instance role
            self.client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)
        except BotoCoreError as e:
            logger.error("Failed to create S3 client: %s", e)
            raise

    def put(self, bucket: str, key: str, content: str, content_type: str):
        logger.debug("blob s3 put: s3://%s/%s", bucket, key)
        self.client.put_object(
            Bucket=bucket,
            Key=key,
            Body=content.encode("utf-8"),
            ContentType=content_type,
        )

    def get(self, bucket: str, key: str) -> str | None:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in _MISSING_OBJECT_CODES:
                logger.error("S3 GET error for s3://%s/%s: %s", bucket, key, e)
            return None
        return response["Body"].read().decode("utf-8")


# --- Blob Store Client ---

class BlobStore:
    """Uploads and downloads finished report JSON."""

    def __init__(self, backend):
        self.backend = backend

    def put_report(self, bucket: str, key: str, report_json: str):
        logger.info("Uploading report to %s/%s", bucket, key)
        try:
            self.backend.put(bucket, key, report_json, REPORT_CONTENT_TYPE)
        except (OSError, ValueError, BotoCoreError, ClientError):
            logger.exception("Error uploading report to %s/%s", bucket, key)
            raise
        logger.info("Successfully uploaded report to %s/%s", bucket, key)

    def get_report(self, bucket: str, key: str) -> str | None:
        return self.backend.get(bucket, key)


# --- Initialize Backend and Default Store ---

logger.info("reports_store: %s, bucket: %s", config.reports_store, config.reports_bucket)

if config.reports_store == "s3":
    try:
        BLOB_BACKEND = S3BlobBackend(region=config.aws_region, endpoint_url=config.s3_endpoint_url)
    except BotoCoreError:
        logger.info("Falling back to local file storage under %s due to S3 client failure.", config.reports_dir)
        BLOB_BACKEND = FileSystemBlobBackend(config.reports_dir)
else:
    logger.info("REPORTS_STORE is %s. Using local file storage under %s.", config.reports_store, config.reports_dir)
    BLOB_BACKEND = FileSystemBlobBackend(config.reports_dir)

_DEFAULT_BLOB_STORE = BlobStore(backend=BLOB_BACKEND)

def get_blob_store():
    return _DEFAULT_BLOB_STORE

def get_mock_blob_store():
    return BlobStore(backend=_InMemoryBlobBackend())
