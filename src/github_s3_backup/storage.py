from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterator, Optional

import boto3

LOG = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M"


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


def build_backup_key(prefix: str, timestamp: str, repository: str) -> str:
    return str(PurePosixPath(prefix, timestamp, f"{repository}.zip"))


def build_manifest_key(prefix: str, timestamp: str) -> str:
    return str(PurePosixPath(prefix, timestamp, "manifest.json"))


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    last_modified: Optional[datetime]


@dataclass
class S3BackupStore:
    """Reads and writes backup archives in one S3 bucket."""

    bucket: str
    region: str
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = boto3.session.Session(region_name=self.region).client("s3")

    def upload_file(self, path: Path, key: str, metadata: Optional[Dict[str, str]] = None) -> None:
        extra_args: Dict[str, Any] = {"ContentType": "application/zip"}
        if metadata:
            extra_args["Metadata"] = metadata
        self.client.upload_file(Filename=str(path), Bucket=self.bucket, Key=key, ExtraArgs=extra_args)
        LOG.info("Uploaded %s to s3://%s/%s", path.name, self.bucket, key)

    def put_json(self, key: str, payload: Dict[str, Any]) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=json.dumps(payload, indent=2).encode("utf-8"),
            ContentType="application/json",
        )
        LOG.info("Wrote s3://%s/%s", self.bucket, key)

    def iter_objects(self, prefix: str) -> Iterator[StoredObject]:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                yield StoredObject(
                    key=item["Key"],
                    size=int(item.get("Size", 0)),
                    last_modified=item.get("LastModified"),
                )

    def download_file(self, key: str, destination: Path) -> None:
        self.client.download_file(Bucket=self.bucket, Key=key, Filename=str(destination))
        LOG.debug("Downloaded s3://%s/%s to %s", self.bucket, key, destination)
