from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence

import requests
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .backup import backup_all
from .catalog import BackupRecord, list_backups
from .config import BackupSettings
from .github import GitHubAPI, exchange_for_installation_token, list_repositories, mint_jwt
from .manifest import BackupReport
from .restore import RestoreReport, restore_records
from .storage import S3BackupStore, build_manifest_key

LOG = logging.getLogger(__name__)


def build_store(settings: BackupSettings, client: Any = None) -> S3BackupStore:
    return S3BackupStore(bucket=settings.bucket_name, region=settings.region, client=client)


def run_backup(
    settings: BackupSettings,
    session: Optional[requests.Session] = None,
    s3_client: Any = None,
    started_at: Optional[datetime] = None,
) -> BackupReport:
    """Authenticate as the GitHub App and back up every installation repository.

    Fatal errors (signing, auth, listing) propagate; per-repository failures
    are recorded in the returned report.
    """
    LOG.info("Starting backup run for app %s into s3://%s/%s/", settings.app_id, settings.bucket_name, settings.prefix)

    app_jwt = mint_jwt(settings.app_id, settings.private_key)
    installation = exchange_for_installation_token(
        app_jwt,
        api_url=settings.api_url,
        timeout=settings.http_timeout,
        session=session,
    )
    LOG.info("Obtained installation token for installation %s", installation.installation_id)

    api = GitHubAPI(
        installation.token,
        base_url=settings.api_url,
        timeout=settings.http_timeout,
        session=session,
    )
    repositories = list_repositories(api)
    store = build_store(settings, s3_client)

    report = backup_all(
        api,
        repositories,
        store,
        prefix=settings.prefix,
        origin=settings.origin,
        started_at=started_at,
        scratch_dir=settings.scratch_dir,
        download_timeout=settings.download_timeout,
    )

    if report.attempted:
        _write_manifest(store, settings.prefix, report)
    return report


def _write_manifest(store: S3BackupStore, prefix: str, report: BackupReport) -> None:
    key = build_manifest_key(prefix, report.timestamp)
    try:
        store.put_json(key, report.to_dict())
    except (BotoCoreError, ClientError, Boto3Error) as exc:
        LOG.warning("Could not write backup manifest %s: %s", key, exc)


def load_catalog(settings: BackupSettings, s3_client: Any = None) -> List[BackupRecord]:
    return list_backups(build_store(settings, s3_client), settings.prefix)


def run_restore(
    settings: BackupSettings,
    records: Sequence[BackupRecord],
    destination: Path,
    s3_client: Any = None,
) -> RestoreReport:
    store = build_store(settings, s3_client)
    return restore_records(records, destination, store, scratch_dir=settings.scratch_dir)
