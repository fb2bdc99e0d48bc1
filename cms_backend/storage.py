"""
Image object storage for S3-compatible buckets and in-memory testing.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

IMAGE_PREFIX = "images/"


class ImageStore(Protocol):
    """Defines the operations the image routes need from object storage."""

    def save(self, name: str, data: bytes, content_type: str | None = None) -> None:
        ...

    def get(self, name: str) -> Optional[bytes]:
        ...

    def list(self) -> List[str]:
        ...


@dataclass
class InMemoryImageStore:
    """Process-local image store; names keep insertion order."""

    stored_objects: Dict[str, bytes] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def save(self, name: str, data: bytes, content_type: str | None = None) -> None:
        with self._lock:
            self.stored_objects[name] = bytes(data)

    def get(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self.stored_objects.get(name)

    def list(self) -> List[str]:
        with self._lock:
            return list(self.stored_objects)


@dataclass
class S3ImageStore:
    """
    S3-compatible image store (AWS S3, Tencent COS, MinIO, Supabase Storage).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    prefix: str = IMAGE_PREFIX

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def save(self, name: str, data: bytes, content_type: str | None = None) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=f"{self.prefix}{name}",
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )

    def get(self, name: str) -> Optional[bytes]:
        try:
            response = self._client.get_object(
                Bucket=self.bucket, Key=f"{self.prefix}{name}"
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise
        return response["Body"].read()

    def list(self) -> List[str]:
        names: List[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
            for item in page.get("Contents", []):
                names.append(item["Key"][len(self.prefix):])
        return names
