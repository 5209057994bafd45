from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

import requests

from .catalog import group_by_timestamp, latest_per_repository, records_for_generation
from .config import BackupSettings, collect_config, load_settings
from .errors import ConfigurationError, FatalError, ParseError
from .interactive import RestoreSession, format_size, run_session
from .logger import configure_logging, get_logger
from .orchestrator import load_catalog, run_backup, run_restore

LOG = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up GitHub App repositories to S3 and restore them.")
    parser.add_argument(
        "--config",
        default=os.getenv("GITHUB_BACKUP_CONFIG"),
        help="Optional YAML file with flat configuration keys.",
    )
    parser.add_argument(
        "--secret-name",
        default=os.getenv("SECRET_NAME"),
        help="AWS Secrets Manager secret holding the configuration keys as JSON.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    backup = subparsers.add_parser("backup", help="Back up every installation repository.")
    backup.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when any repository failed.",
    )

    subparsers.add_parser("list", help="List backups grouped by generation.")

    restore = subparsers.add_parser("restore", help="Interactively restore backups.")
    restore.add_argument(
        "--generation",
        help="Restore from this backup timestamp instead of the latest per repository.",
    )
    restore.add_argument("--select", help="Selection such as '1,3-5' or 'all'; skips the prompt.")
    restore.add_argument("--destination", type=Path, help="Restore directory; skips the prompt.")
    restore.add_argument("--yes", action="store_true", help="Do not ask for confirmation.")
    return parser.parse_args(argv)


def load_configuration(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> BackupSettings:
    config_path = Path(args.config).expanduser() if args.config else None
    values = collect_config(config_path=config_path, secret_name=args.secret_name, environ=environ)
    settings = load_settings(values)
    LOG.info("Configuration loaded: bucket=%s region=%s prefix=%s", settings.bucket_name, settings.region, settings.prefix)
    return settings


def backup_command(
    settings: BackupSettings,
    args: argparse.Namespace,
    session: Optional[requests.Session] = None,
    s3_client: Any = None,
) -> int:
    report = run_backup(settings, session=session, s3_client=s3_client)
    if not report.attempted:
        LOG.info("Nothing to back up")
        return EXIT_OK

    for error in report.errors:
        LOG.error("Failed: %s", error)
    LOG.info(
        "Summary: %d attempted, %d succeeded, %d failed (generation %s)",
        report.attempted,
        report.succeeded,
        report.failed,
        report.timestamp,
    )
    if report.failed and args.strict:
        return EXIT_FAILURE
    return EXIT_OK


def list_command(
    settings: BackupSettings,
    s3_client: Any = None,
    output: Callable[[str], None] = print,
) -> int:
    records = load_catalog(settings, s3_client)
    if not records:
        output("No backups found.")
        return EXIT_OK

    for timestamp, group in group_by_timestamp(records).items():
        total = sum(record.size_bytes for record in group)
        output(f"{timestamp}  ({len(group)} repositories, {format_size(total)})")
        for record in group:
            output(f"    {record.repository:<40} {format_size(record.size_bytes):>10}")
    return EXIT_OK


def restore_command(
    settings: BackupSettings,
    args: argparse.Namespace,
    s3_client: Any = None,
    input_func: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
) -> int:
    records = load_catalog(settings, s3_client)
    if args.generation:
        candidates = records_for_generation(records, args.generation)
        if records and not candidates:
            output(f"No backups found for generation {args.generation}.")
            return EXIT_OK
    else:
        candidates = latest_per_repository(records)

    session = RestoreSession(candidates, input_func=input_func, output=output)
    try:
        run_session(
            session,
            lambda selected, destination: run_restore(settings, selected, destination, s3_client=s3_client),
            selection=args.select,
            destination=args.destination,
            assume_yes=args.yes,
        )
    except ParseError as exc:
        output(f"Invalid selection: {exc}")
        return EXIT_CONFIG
    return EXIT_OK


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    session: Optional[requests.Session] = None,
    s3_client: Any = None,
    input_func: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = load_configuration(args, environ=environ)
        if args.command == "backup":
            return backup_command(settings, args, session=session, s3_client=s3_client)
        if args.command == "list":
            return list_command(settings, s3_client=s3_client, output=output)
        return restore_command(settings, args, s3_client=s3_client, input_func=input_func, output=output)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return EXIT_CONFIG
    except FatalError as exc:
        LOG.error("%s failed: %s", exc.step, exc)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
