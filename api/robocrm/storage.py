import io
import logging
from datetime import timedelta

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_SECURE, MINIO_REGION
from .errors import CrmError, NotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

_MISSING_CODES = ("NoSuchKey", "NoSuchObject", "NoSuchBucket")

_client = Minio(
    MINIO_ENDPOINT,
    access_key=MINIO_ACCESS_KEY,
    secret_key=MINIO_SECRET_KEY,
    secure=MINIO_SECURE,
    region=MINIO_REGION,
)


class ArtifactExists(CrmError):
    status_code = 409
    code = "artifact_exists"


def ensure_bucket():
    if not _client.bucket_exists(MINIO_BUCKET):
        _client.make_bucket(MINIO_BUCKET)

def object_exists(key: str) -> bool:
    try:
        _client.stat_object(MINIO_BUCKET, key)
    except S3Error as exc:
        if exc.code in _MISSING_CODES:
            return False
        raise UpstreamUnavailable(f"artifact store error for {key}: {exc.code}") from exc
    return True

def put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream", overwrite: bool = False):
    try:
        ensure_bucket()
        if not overwrite and object_exists(key):
            raise ArtifactExists(f"artifact {key} already exists")
        _client.put_object(MINIO_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)
    except (S3Error, HTTPError) as exc:
        raise UpstreamUnavailable(f"failed to upload {key}: {exc}") from exc
    logger.debug("uploaded %s (%d bytes)", key, len(data))

def get_bytes(key: str) -> bytes:
    try:
        resp = _client.get_object(MINIO_BUCKET, key)
    except S3Error as exc:
        if exc.code in _MISSING_CODES:
            raise NotFound(f"stored file {key} is missing") from exc
        raise UpstreamUnavailable(f"failed to download {key}: {exc.code}") from exc
    except HTTPError as exc:
        raise UpstreamUnavailable(f"failed to download {key}: {exc}") from exc
    try:
        return resp.read()
    finally:
        resp.close()
        resp.release_conn()

def delete_object(key: str):
    try:
        _client.remove_object(MINIO_BUCKET, key)
    except (S3Error, HTTPError) as exc:
        raise UpstreamUnavailable(f"failed to delete {key}: {exc}") from exc
    logger.debug("deleted %s", key)

def public_url(key: str, expires_seconds: int) -> str:
    """Presigned GET URL for a stored object, valid for ``expires_seconds``."""
    try:
        return _client.presigned_get_object(MINIO_BUCKET, key, expires=timedelta(seconds=expires_seconds))
    except (S3Error, HTTPError, ValueError) as exc:
        raise UpstreamUnavailable(f"failed to sign url for {key}: {exc}") from exc
