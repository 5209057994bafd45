from __future__ import annotations

import logging
import os
import tempfile
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Sequence

import requests
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ItemError
from .github import GitHubAPI, RepositoryDescriptor
from .manifest import FAILED, BackupReport, ItemResult
from .storage import S3BackupStore, build_backup_key, format_timestamp

LOG = logging.getLogger(__name__)


def build_metadata(repo: RepositoryDescriptor, timestamp: str, origin: str) -> Dict[str, str]:
    return {
        "backup-timestamp": timestamp,
        "repository": repo.full_name,
        "branch": repo.default_branch,
        "origin": origin,
    }


def backup_repository(
    api: GitHubAPI,
    repo: RepositoryDescriptor,
    store: S3BackupStore,
    key: str,
    metadata: Dict[str, str],
    scratch_dir: Optional[Path] = None,
    download_timeout: Optional[float] = None,
) -> int:
    """Download one default-branch zipball and upload it under ``key``.

    The scratch file is removed whether or not the transfer succeeds.
    """
    fd, scratch_name = tempfile.mkstemp(prefix=f"{repo.name}-", suffix=".zip", dir=scratch_dir)
    os.close(fd)
    scratch = Path(scratch_name)
    try:
        LOG.info("Downloading %s@%s", repo.full_name, repo.default_branch)
        try:
            size = api.download(repo.archive_path, scratch, timeout=download_timeout)
        except (requests.RequestException, OSError) as exc:
            raise ItemError(f"archive download failed: {exc}") from exc
        if size == 0:
            raise ItemError("archive download returned no data")

        try:
            store.upload_file(scratch, key, metadata=metadata)
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as exc:
            raise ItemError(f"upload to s3://{store.bucket}/{key} failed: {exc}") from exc
        return size
    finally:
        scratch.unlink(missing_ok=True)


def backup_all(
    api: GitHubAPI,
    repositories: Sequence[RepositoryDescriptor],
    store: S3BackupStore,
    prefix: str,
    origin: str,
    started_at: Optional[datetime] = None,
    scratch_dir: Optional[Path] = None,
    download_timeout: Optional[float] = None,
) -> BackupReport:
    """Back up every repository as one generation sharing a single timestamp."""
    started_at = started_at or datetime.now(timezone.utc)
    timestamp = format_timestamp(started_at)
    report = BackupReport(timestamp=timestamp, started_at=started_at)

    if not repositories:
        LOG.warning("No repositories to back up")
        report.completed_at = datetime.now(timezone.utc)
        return report

    LOG.info("Backing up %d repositories as generation %s", len(repositories), timestamp)
    for index, repo in enumerate(repositories, start=1):
        key = build_backup_key(prefix, timestamp, repo.name)
        entry = ItemResult(name=repo.full_name, key=key)
        LOG.info("[%d/%d] %s", index, len(repositories), repo.full_name)
        try:
            entry.size_bytes = backup_repository(
                api,
                repo,
                store,
                key,
                metadata=build_metadata(repo, timestamp, origin),
                scratch_dir=scratch_dir,
                download_timeout=download_timeout,
            )
        except ItemError as exc:
            entry.status = FAILED
            entry.error = str(exc)
            LOG.error("Backup failed for %s: %s", repo.full_name, exc)
        except Exception as exc:  # noqa: BLE001
            entry.status = FAILED
            entry.error = str(exc)
            LOG.error("Unexpected error for %s: %s", repo.full_name, exc)
            LOG.debug("Traceback:\n%s", "".join(traceback.format_exc()))
        report.items.append(entry)

    report.completed_at = datetime.now(timezone.utc)
    LOG.info(
        "Backup generation %s finished: %d attempted, %d succeeded, %d failed",
        timestamp,
        report.attempted,
        report.succeeded,
        report.failed,
    )
    return report
