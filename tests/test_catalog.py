from __future__ import annotations

from datetime import datetime, timezone

import pytest

from github_s3_backup.catalog import (
    build_catalog,
    group_by_timestamp,
    latest_per_repository,
    list_backups,
    parse_backup_key,
    records_for_generation,
)
from github_s3_backup.errors import CatalogError
from github_s3_backup.storage import S3BackupStore, StoredObject

MODIFIED = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def _obj(key: str, size: int = 10) -> StoredObject:
    return StoredObject(key=key, size=size, last_modified=MODIFIED)


def test_catalog_skips_unrecognised_keys_and_sorts_newest_first():
    keys = [
        "backups/2024-01-01-0200/repoA.zip",
        "backups/2024-01-02-0200/repoA.zip",
        "junk/not-a-backup.txt",
    ]

    records = build_catalog("backups", [_obj(key) for key in keys])

    assert [record.timestamp for record in records] == ["2024-01-02-0200", "2024-01-01-0200"]
    assert all(record.repository == "repoA" for record in records)


def test_catalog_is_independent_of_input_order():
    keys = [
        "backups/2024-01-01-0200/web.zip",
        "backups/2024-01-02-0200/api.zip",
        "backups/2024-01-02-0200/web.zip",
        "backups/2024-01-01-0200/api.zip",
        "backups/2024-01-02-0200/manifest.json",
    ]

    forward = build_catalog("backups", [_obj(key) for key in keys])
    backward = build_catalog("backups", [_obj(key) for key in reversed(keys)])

    assert forward == backward
    assert [(r.timestamp, r.repository) for r in forward] == [
        ("2024-01-02-0200", "api"),
        ("2024-01-02-0200", "web"),
        ("2024-01-01-0200", "api"),
        ("2024-01-01-0200", "web"),
    ]


def test_unparsable_timestamp_falls_back_to_last_modified():
    record = parse_backup_key("backups", _obj("backups/manual-run/api.zip"))

    assert record is not None
    assert record.timestamp == "manual-run"
    assert record.timestamp_date == MODIFIED


@pytest.mark.parametrize(
    "key",
    [
        "backups/api.zip",
        "backups/2024-01-01-0200/nested/api.zip",
        "backups/2024-01-01-0200/api.tar.gz",
        "other/2024-01-01-0200/api.zip",
    ],
)
def test_non_matching_keys_are_ignored(key):
    assert parse_backup_key("backups", _obj(key)) is None


def test_latest_per_repository_sorted_by_name():
    records = build_catalog(
        "backups",
        [
            _obj("backups/2024-01-01-0200/zeta.zip"),
            _obj("backups/2024-01-03-0200/alpha.zip"),
            _obj("backups/2024-01-01-0200/alpha.zip"),
        ],
    )

    latest = latest_per_repository(records)

    assert [(r.repository, r.timestamp) for r in latest] == [
        ("alpha", "2024-01-03-0200"),
        ("zeta", "2024-01-01-0200"),
    ]


def test_grouping_by_generation():
    records = build_catalog(
        "backups",
        [
            _obj("backups/2024-01-01-0200/web.zip"),
            _obj("backups/2024-01-02-0200/api.zip"),
            _obj("backups/2024-01-01-0200/api.zip"),
        ],
    )

    by_time = group_by_timestamp(records)
    assert list(by_time) == ["2024-01-02-0200", "2024-01-01-0200"]
    assert [r.repository for r in by_time["2024-01-01-0200"]] == ["api", "web"]

    assert [r.repository for r in records_for_generation(records, "2024-01-01-0200")] == ["api", "web"]


def test_list_backups_reads_all_pages(s3_client):
    for index in range(5):
        s3_client.objects[f"backups/2024-01-0{index + 1}-0000/repo.zip"] = b"data"
    s3_client.objects["unrelated/file.zip"] = b"data"
    store = S3BackupStore(bucket="b", region="r", client=s3_client)

    records = list_backups(store, "backups")

    assert len(records) == 5
    assert records[0].timestamp == "2024-01-05-0000"
    assert records[0].size_bytes == 4


def test_list_backups_empty_bucket_is_not_an_error(s3_client):
    assert list_backups(S3BackupStore(bucket="b", region="r", client=s3_client), "backups") == []


def test_list_backups_wraps_storage_errors(s3_client):
    s3_client.fail_listing = True

    with pytest.raises(CatalogError):
        list_backups(S3BackupStore(bucket="b", region="r", client=s3_client), "backups")
