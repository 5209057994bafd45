"""Parse the archives present in the bucket into backup records."""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import CatalogError
from .storage import TIMESTAMP_FORMAT, S3BackupStore, StoredObject

LOG = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class BackupRecord:
    repository: str
    timestamp: str
    timestamp_date: datetime
    storage_key: str
    size_bytes: int
    last_modified: Optional[datetime]

    @property
    def restore_dirname(self) -> str:
        return f"{self.repository}-{self.timestamp}"


def _key_pattern(prefix: str) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(prefix.strip('/'))}/([^/]+)/([^/]+)\.zip$")


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def parse_backup_key(prefix: str, obj: StoredObject) -> Optional[BackupRecord]:
    """Return a record for ``prefix/<timestamp>/<repository>.zip`` keys, else None."""
    match = _key_pattern(prefix).match(obj.key)
    if not match:
        return None

    timestamp, repository = match.groups()
    try:
        timestamp_date = datetime.strptime(timestamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        LOG.debug("Unrecognised timestamp %r in %s; using LastModified", timestamp, obj.key)
        timestamp_date = _as_utc(obj.last_modified) if obj.last_modified else _EPOCH

    return BackupRecord(
        repository=repository,
        timestamp=timestamp,
        timestamp_date=timestamp_date,
        storage_key=obj.key,
        size_bytes=obj.size,
        last_modified=obj.last_modified,
    )


def build_catalog(prefix: str, objects: Iterable[StoredObject]) -> List[BackupRecord]:
    """Newest generation first; repositories ascending within a generation."""
    records = [record for record in (parse_backup_key(prefix, obj) for obj in objects) if record]
    records.sort(key=lambda record: (record.repository, record.storage_key))
    records.sort(key=lambda record: record.timestamp_date, reverse=True)
    return records


def list_backups(store: S3BackupStore, prefix: str) -> List[BackupRecord]:
    LOG.info("Listing backups under s3://%s/%s/", store.bucket, prefix)
    try:
        objects = list(store.iter_objects(f"{prefix.strip('/')}/"))
    except (BotoCoreError, ClientError) as exc:
        raise CatalogError(f"Listing s3://{store.bucket}/{prefix}/ failed: {exc}") from exc

    records = build_catalog(prefix, objects)
    if records:
        LOG.info("Found %d backup archives", len(records))
    else:
        LOG.info("No backups found")
    return records


def latest_per_repository(records: Iterable[BackupRecord]) -> List[BackupRecord]:
    """Most recent record for each repository, sorted by repository name."""
    latest: Dict[str, BackupRecord] = {}
    for record in records:
        current = latest.get(record.repository)
        if current is None or record.timestamp_date > current.timestamp_date:
            latest[record.repository] = record
    return [latest[name] for name in sorted(latest)]


def records_for_generation(records: Iterable[BackupRecord], timestamp: str) -> List[BackupRecord]:
    return sorted(
        (record for record in records if record.timestamp == timestamp),
        key=lambda record: record.repository,
    )


def group_by_timestamp(records: Iterable[BackupRecord]) -> "OrderedDict[str, List[BackupRecord]]":
    """Group catalog records by generation, preserving catalog order."""
    groups: "OrderedDict[str, List[BackupRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(record.timestamp, []).append(record)
    return groups
