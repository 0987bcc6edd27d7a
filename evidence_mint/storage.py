"""
Evidence upload to content-addressed storage.

Uses an S3-compatible IPFS pinning endpoint (Filebase-style). The object is
written under a content-hash key and the provider reports the resulting CID
either as an ``x-amz-meta-cid`` response header or as ``cid`` object metadata.
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import PurePath
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError
from .models import EvidenceFile

DEFAULT_STORAGE_ENDPOINT = "https://s3.filebase.com"
DEFAULT_STORAGE_REGION = "us-east-1"

ACCEPTED_MIME_PREFIXES = ("image/", "video/")
ACCEPTED_MIME_TYPES = ("application/pdf",)

CID_HEADER_NAME = "x-amz-meta-cid"
CID_METADATA_KEY = "cid"

QUOTA_ERROR_CODES = {"QuotaExceeded", "SlowDown", "TooManyRequests", "429"}
ACCESS_DENIED_ERROR_CODES = {"AccessDenied", "403", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
NOT_FOUND_ERROR_CODES = {"404", "NoSuchBucket", "NotFound"}

UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")

logger = logging.getLogger(__name__)


def is_accepted_mime_type(mime_type: str) -> bool:
    normalized = (mime_type or "").strip().lower()
    if normalized in ACCEPTED_MIME_TYPES:
        return True
    return any(normalized.startswith(prefix) and len(normalized) > len(prefix) for prefix in ACCEPTED_MIME_PREFIXES)


def validate_evidence(evidence: EvidenceFile) -> None:
    if evidence.size_bytes <= 0:
        raise StorageError("unsupported content: evidence file is empty")
    if not is_accepted_mime_type(evidence.mime_type):
        raise StorageError(f"unsupported content: {evidence.mime_type or 'unknown'} is not an image, video, or PDF")


def object_key(evidence: EvidenceFile) -> str:
    """Content-hash key with the original extension kept for gateway previews."""
    digest = hashlib.sha256(evidence.content).hexdigest()
    extension = UNSAFE_KEY_CHARS.sub("", PurePath(evidence.name).suffix.lstrip(".")).lower()
    return f"{digest}.{extension}" if extension else digest


def _client_error_message(exc: ClientError) -> tuple[str, str]:
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    message = str(error.get("Message") or exc)
    return code, message


def _classify_client_error(exc: ClientError, bucket: str) -> StorageError:
    code, message = _client_error_message(exc)
    if code in QUOTA_ERROR_CODES:
        return StorageError(f"storage provider rejected the upload (quota exceeded): {message}")
    if code in ACCESS_DENIED_ERROR_CODES:
        return StorageError(f"storage access denied for bucket {bucket}: {message}")
    if code in NOT_FOUND_ERROR_CODES:
        return StorageError(f"storage bucket not found: {bucket}")
    return StorageError(f"storage error: {message}")


def _cid_from_headers(response: dict[str, Any]) -> str | None:
    headers = (response.get("ResponseMetadata") or {}).get("HTTPHeaders") or {}
    value = headers.get(CID_HEADER_NAME)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _cid_from_metadata(response: dict[str, Any]) -> str | None:
    metadata = response.get("Metadata") or {}
    value = metadata.get(CID_METADATA_KEY)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class StorageClient:
    def __init__(
        self,
        bucket: str,
        endpoint_url: str = DEFAULT_STORAGE_ENDPOINT,
        region: str = DEFAULT_STORAGE_REGION,
        s3_client: Any = None,
    ):
        if not bucket or not bucket.strip():
            raise ValueError("bucket is required")
        self.bucket = bucket.strip()
        self.endpoint_url = endpoint_url
        self.region = region
        self._s3_client = s3_client

    @property
    def s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = boto3.client("s3", endpoint_url=self.endpoint_url, region_name=self.region)
        return self._s3_client

    def upload(self, evidence: EvidenceFile) -> dict[str, Any]:
        """Store one evidence blob and return the provider payload describing it.

        Raises StorageError on unsupported content, network failure, quota
        rejection, or when the provider does not report a CID.
        """
        validate_evidence(evidence)
        key = object_key(evidence)
        logger.info("Uploading %s (%d bytes, %s) as %s", evidence.name, evidence.size_bytes, evidence.mime_type, key)

        try:
            put_response = self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=evidence.content,
                ContentType=evidence.mime_type,
                Metadata={"filename": evidence.name},
            )
            cid = _cid_from_headers(put_response)
            if cid is None:
                cid = _cid_from_metadata(self.s3_client.head_object(Bucket=self.bucket, Key=key))
        except ClientError as exc:
            raise _classify_client_error(exc, self.bucket) from exc
        except BotoCoreError as exc:
            raise StorageError(f"storage network error: {exc}") from exc

        if not cid:
            raise StorageError(f"storage provider did not report a CID for {key}")

        logger.info("Stored %s with CID %s", key, cid)
        return {
            "ipfsUri": f"ipfs://{cid}",
            "cid": cid,
            "bucket": self.bucket,
            "key": key,
        }
