# graphyy/s3_uploader.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3

from graphyy.models import Artifact


@dataclass
class S3Uploader:
    bucket: str
    prefix: str
    region: str | None = None
    client: Any = None

    def __post_init__(self):
        # region may be None; boto3 will use env/config
        if self.client is None:
            self.client = boto3.client("s3", region_name=self.region)

    def _key(self, rel_key: str) -> str:
        rel_key = rel_key.lstrip("/")
        return f"{self.prefix.rstrip('/')}/{rel_key}"

    def put_bytes(self, rel_key: str, data: bytes, content_type: str | None = None) -> str:
        key = self._key(rel_key)
        extra = {"ServerSideEncryption": "AES256"}
        if content_type:
            extra["ContentType"] = content_type
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        return f"s3://{self.bucket}/{key}"

    def put_artifact(self, job_id: str, artifact: Artifact) -> str:
        """Same key for every run of a job, so a re-run overwrites the previous object."""
        return self.put_bytes(
            f"{job_id}/artifact.json",
            artifact.to_json().encode("utf-8"),
            content_type="application/json",
        )
