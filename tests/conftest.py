from __future__ import annotations

import io
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
import requests
from botocore.exceptions import ClientError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from github_s3_backup.config import BackupSettings


def make_zip(files: Dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_body: Any = None,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.status_code = status_code
        self._json = json_body
        self.content = content
        self.headers = headers or {}

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None


class FakeSession:
    """Routes ``(method, url)`` to canned responses or exceptions."""

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, str, Dict[str, str]]] = []

    def add(self, method: str, url: str, response: Any) -> None:
        self.routes[(method, url)] = response

    def _dispatch(self, method: str, url: str) -> FakeResponse:
        self.calls.append((method, url, dict(self.headers)))
        response = self.routes.get((method, url))
        if response is None:
            return FakeResponse(status_code=404, json_body={"message": "Not Found"})
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._dispatch("GET", url)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._dispatch("POST", url)


class FakePaginator:
    def __init__(self, client: "FakeS3Client") -> None:
        self._client = client

    def paginate(self, Bucket: str, Prefix: str = ""):  # noqa: N803
        if self._client.fail_listing:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListObjectsV2")
        keys = sorted(key for key in self._client.objects if key.startswith(Prefix))
        page_size = 2
        for start in range(0, max(len(keys), 1), page_size):
            chunk = keys[start : start + page_size]
            if not chunk:
                yield {"KeyCount": 0}
                continue
            yield {
                "Contents": [
                    {
                        "Key": key,
                        "Size": len(self._client.objects[key]),
                        "LastModified": self._client.last_modified.get(key, self._client.default_modified),
                    }
                    for key in chunk
                ]
            }


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.metadata: Dict[str, Dict[str, str]] = {}
        self.last_modified: Dict[str, datetime] = {}
        self.default_modified = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        self.fail_upload_keys: set = set()
        self.fail_download_keys: set = set()
        self.fail_listing = False
        self.uploads: List[str] = []

    def upload_file(self, Filename: str, Bucket: str, Key: str, ExtraArgs: Optional[Dict] = None) -> None:  # noqa: N803
        self.uploads.append(Key)
        if Key in self.fail_upload_keys:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        self.objects[Key] = Path(Filename).read_bytes()
        self.metadata[Key] = dict((ExtraArgs or {}).get("Metadata", {}))

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str = "") -> None:  # noqa: N803
        self.objects[Key] = Body

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def download_file(self, Bucket: str, Key: str, Filename: str) -> None:  # noqa: N803
        if Key in self.fail_download_keys or Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        Path(Filename).write_bytes(self.objects[Key])


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def github_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def settings(private_key_pem, tmp_path) -> BackupSettings:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return BackupSettings(
        app_id="12345",
        private_key=private_key_pem,
        bucket_name="org-backups",
        region="us-east-1",
        prefix="backups",
        scratch_dir=scratch,
    )
