from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

import boto3

from ..config import Settings

REQUIRED_SETTINGS = (
    ("s3_bucket", "S3_BUCKET"),
    ("aws_region", "AWS_REGION"),
    ("public_s3_url_prefix", "PUBLIC_S3_URL_PREFIX"),
)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "file"


def _entity_key(home_id: int, kind: str, entity_id: int, filename: str) -> str:
    return f"{entity_prefix(home_id, kind, entity_id)}{safe_filename(filename)}"


def entity_prefix(home_id: int, kind: str, entity_id: int) -> str:
    return f"homes/{home_id}/{kind}/{entity_id}/"


def build_record_key(home_id: int, record_id: int, filename: str) -> str:
    return _entity_key(home_id, "records", record_id, filename)


def build_warranty_key(home_id: int, warranty_id: int, filename: str) -> str:
    return _entity_key(home_id, "warranties", warranty_id, filename)


def build_reminder_key(home_id: int, reminder_id: int, filename: str) -> str:
    return _entity_key(home_id, "reminders", reminder_id, filename)


def build_service_request_key(home_id: int, service_request_id: int, filename: str) -> str:
    return _entity_key(home_id, "service-requests", service_request_id, filename)


def build_message_key(home_id: int, connection_id: int, filename: str) -> str:
    return _entity_key(home_id, "messages", connection_id, filename)


@dataclass
class PresignedUpload:
    key: str
    url: str
    public_url: str


class StorageService:
    """Brokers direct-to-bucket uploads; the application never handles file bytes."""

    def __init__(self, settings: Settings, client: Any = None) -> None:
        for attr, env_name in REQUIRED_SETTINGS:
            if not getattr(settings, attr):
                raise RuntimeError(f"{env_name} must be set to issue upload URLs.")
        self.bucket: str = settings.s3_bucket  # type: ignore[assignment]
        self.public_prefix = settings.public_s3_url_prefix.rstrip("/")  # type: ignore[union-attr]
        self.expires_seconds = settings.presign_expires_seconds
        self._client = client if client is not None else self._configure_client(settings)

    @staticmethod
    def _configure_client(settings: Settings):
        client_kwargs = {
            "region_name": settings.aws_region,
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
            "endpoint_url": settings.s3_endpoint_url,
        }
        return boto3.client("s3", **{k: v for k, v in client_kwargs.items() if v})

    def public_url(self, key: str) -> str:
        return f"{self.public_prefix}/{key.lstrip('/')}"

    def presign_put(self, key: str, content_type: str, expires_in: Optional[int] = None) -> PresignedUpload:
        url = self._client.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in or self.expires_seconds,
        )
        return PresignedUpload(key=key, url=url, public_url=self.public_url(key))
