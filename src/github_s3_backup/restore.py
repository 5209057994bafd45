from __future__ import annotations

import logging
import os
import shutil
import tempfile
import traceback
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .catalog import BackupRecord
from .errors import ItemError, RestoreError
from .manifest import FAILED, ItemResult
from .storage import S3BackupStore

LOG = logging.getLogger(__name__)


@dataclass
class RestoreReport:
    destination: Path
    items: List[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return len(self.items) - self.succeeded


def extract_archive(archive: Path, target: Path) -> None:
    """Extract ``archive`` into a fresh ``target`` directory, replacing any existing one.

    The archive is opened and its member paths checked before ``target`` is
    touched, so an unreadable or unsafe archive leaves a previous restore in
    place. A failure part-way through extraction removes the partial ``target``.
    """
    root = target.resolve()
    with zipfile.ZipFile(archive) as zf:
        for member in zf.namelist():
            resolved = (root / member).resolve()
            if resolved != root and root not in resolved.parents:
                raise ItemError(f"archive member '{member}' escapes the restore directory")

        if target.exists():
            LOG.info("Removing existing directory %s", target)
            shutil.rmtree(target)
        target.mkdir(parents=True)
        try:
            zf.extractall(root)
        except Exception:
            shutil.rmtree(target, ignore_errors=True)
            raise


def restore_record(
    record: BackupRecord,
    store: S3BackupStore,
    destination: Path,
    scratch_dir: Optional[Path] = None,
) -> Path:
    fd, scratch_name = tempfile.mkstemp(prefix=f"{record.repository}-", suffix=".zip", dir=scratch_dir)
    os.close(fd)
    scratch = Path(scratch_name)
    target = destination / record.restore_dirname
    try:
        try:
            store.download_file(record.storage_key, scratch)
        except (BotoCoreError, ClientError, Boto3Error, OSError) as exc:
            raise ItemError(f"download of s3://{store.bucket}/{record.storage_key} failed: {exc}") from exc

        try:
            extract_archive(scratch, target)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ItemError(f"extracting into {target} failed: {exc}") from exc
        return target
    finally:
        scratch.unlink(missing_ok=True)


def restore_records(
    records: Sequence[BackupRecord],
    destination: Path,
    store: S3BackupStore,
    scratch_dir: Optional[Path] = None,
) -> RestoreReport:
    """Restore each record sequentially; a failed item never stops the rest."""
    destination = destination.expanduser()
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RestoreError(f"Cannot create restore destination {destination}: {exc}") from exc
    report = RestoreReport(destination=destination)

    for index, record in enumerate(records, start=1):
        entry = ItemResult(name=record.restore_dirname, key=record.storage_key, size_bytes=record.size_bytes)
        LOG.info("[%d/%d] Restoring %s from %s", index, len(records), record.repository, record.timestamp)
        try:
            target = restore_record(record, store, destination, scratch_dir=scratch_dir)
            LOG.info("Restored %s to %s", record.repository, target)
        except ItemError as exc:
            entry.status = FAILED
            entry.error = str(exc)
            LOG.error("Restore failed for %s: %s", record.restore_dirname, exc)
        except Exception as exc:  # noqa: BLE001
            entry.status = FAILED
            entry.error = str(exc)
            LOG.error("Unexpected error restoring %s: %s", record.restore_dirname, exc)
            LOG.debug("Traceback:\n%s", "".join(traceback.format_exc()))
        report.items.append(entry)

    LOG.info("Restore finished: %d succeeded, %d failed", report.succeeded, report.failed)
    return report
