from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import boto3
import yaml
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, Field, ValidationError, validator

from .errors import ConfigurationError
from .logger import get_logger

LOG = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_REGION = "ap-southeast-2"
DEFAULT_PREFIX = "backups"
DEFAULT_ORIGIN = "github-s3-backup"

# Flat configuration keys mapped onto BackupSettings fields.
KEY_MAP: Dict[str, str] = {
    "GITHUB_APP_ID": "app_id",
    "GITHUB_APP_PRIVATE_KEY": "private_key",
    "S3_BUCKET_NAME": "bucket_name",
    "AWS_REGION": "region",
    "AWS_DEFAULT_REGION": "region",
    "BACKUP_PREFIX": "prefix",
    "GITHUB_API_URL": "api_url",
    "HTTP_TIMEOUT": "http_timeout",
    "DOWNLOAD_TIMEOUT": "download_timeout",
    "BACKUP_ORIGIN": "origin",
    "SCRATCH_DIR": "scratch_dir",
}

REQUIRED_KEYS = ("GITHUB_APP_ID", "GITHUB_APP_PRIVATE_KEY", "S3_BUCKET_NAME")


class BackupSettings(BaseModel):
    """Validated runtime settings. Loaded once per process."""

    app_id: str
    private_key: str = Field(repr=False)
    bucket_name: str
    region: str = DEFAULT_REGION
    prefix: str = DEFAULT_PREFIX
    api_url: str = DEFAULT_API_URL
    http_timeout: float = 30.0
    download_timeout: float = 300.0
    origin: str = DEFAULT_ORIGIN
    scratch_dir: Optional[Path] = None

    class Config:
        frozen = True

    @validator("app_id", "private_key", "bucket_name", "region")
    def _require_value(cls, value: str) -> str:  # noqa: N805
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @validator("prefix")
    def _normalise_prefix(cls, value: str) -> str:  # noqa: N805
        value = value.strip().strip("/")
        if not value:
            raise ValueError("backup prefix must not be empty")
        return value

    @validator("http_timeout", "download_timeout")
    def _positive_timeout(cls, value: float) -> float:  # noqa: N805
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @validator("scratch_dir")
    def _expand_scratch_dir(cls, value: Optional[Path]) -> Optional[Path]:  # noqa: N805
        return value.expanduser() if value else None


# --- Config sources ----------------------------------------------------------


def environment_source(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    return {key: environ[key] for key in KEY_MAP if environ.get(key)}


def yaml_file_source(path: Path) -> Dict[str, str]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file {path} is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a flat mapping")
    return {str(key): str(value) for key, value in raw.items() if value is not None}


def secrets_manager_source(secret_id: str, region: str, client: Any = None) -> Dict[str, str]:
    """Read a JSON key-value secret from AWS Secrets Manager."""
    client = client or boto3.client("secretsmanager", region_name=region)
    LOG.info("Loading configuration secret %s from region %s", secret_id, region)
    try:
        response = client.get_secret_value(SecretId=secret_id)
    except (BotoCoreError, ClientError) as exc:
        raise ConfigurationError(f"Unable to read secret '{secret_id}': {exc}") from exc

    try:
        payload = json.loads(response.get("SecretString") or "")
    except ValueError as exc:
        raise ConfigurationError(f"Secret '{secret_id}' does not contain a JSON object") from exc

    if not isinstance(payload, dict):
        raise ConfigurationError(f"Secret '{secret_id}' does not contain a JSON object")
    return {str(key): str(value) for key, value in payload.items() if value is not None}


def collect_config(
    config_path: Optional[Path] = None,
    secret_name: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    secrets_client: Any = None,
) -> Dict[str, str]:
    """Merge the configured sources. Later sources win: file, secret, environment."""
    env_values = environment_source(environ)
    merged: Dict[str, str] = {}

    if config_path:
        merged.update(yaml_file_source(config_path))

    if secret_name:
        lookup = {**merged, **env_values}
        region = lookup.get("AWS_REGION") or lookup.get("AWS_DEFAULT_REGION") or DEFAULT_REGION
        merged.update(secrets_manager_source(secret_name, region, client=secrets_client))

    merged.update(env_values)
    return merged


def load_settings(values: Mapping[str, str]) -> BackupSettings:
    missing = [key for key in REQUIRED_KEYS if not str(values.get(key, "")).strip()]
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    fields: Dict[str, Any] = {}
    for key, field_name in KEY_MAP.items():
        if key in values and str(values[key]).strip():
            fields.setdefault(field_name, values[key])

    try:
        return BackupSettings(**fields)
    except ValidationError as exc:
        raise ConfigurationError(_describe_validation_error(exc)) from exc


def _describe_validation_error(exc: ValidationError) -> str:
    # Validation messages can echo input values; never echo the key.
    errors: Iterable[Dict[str, Any]] = exc.errors()
    parts = []
    for error in errors:
        location = ".".join(str(item) for item in error.get("loc", ()))
        if location == "private_key":
            parts.append(f"{location}: invalid value")
        else:
            parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid configuration: " + ("; ".join(parts) if parts else type(exc).__name__)
