from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import requests

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
API_VERSION = "2022-11-28"
USER_AGENT = "github-s3-backup"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class GitHubAPI:
    """Thin requests wrapper authenticated with a bearer JWT or installation token."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub bearer token must not be empty")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": USER_AGENT,
            }
        )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._log = logging.getLogger(self.__class__.__name__)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._session.get(self._url(path), params=params, timeout=self._timeout)
        self._check(response, "GET", path)
        return response.json()

    def post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        response = self._session.post(self._url(path), json=payload, timeout=self._timeout)
        self._check(response, "POST", path)
        return response.json()

    def iterate(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        items_key: Optional[str] = None,
    ) -> Iterable[Dict[str, Any]]:
        """Yield items across ``Link: rel="next"`` pages.

        ``items_key`` selects the list inside object-shaped responses such as
        ``/installation/repositories``.
        """
        next_url: Optional[str] = self._url(path)
        request_params = params.copy() if params else {}
        request_params.setdefault("per_page", 100)

        while next_url:
            response = self._session.get(next_url, params=request_params, timeout=self._timeout)
            self._check(response, "GET", path)

            body = response.json()
            items = body.get(items_key, []) if items_key else body
            for item in items:
                yield item

            next_url = self._extract_next_link(response.headers.get("Link"))
            request_params = {}

    def download(self, path: str, destination: Path, timeout: Optional[float] = None) -> int:
        """Stream a binary response body to ``destination``; returns bytes written."""
        written = 0
        with self._session.get(
            self._url(path),
            stream=True,
            allow_redirects=True,
            timeout=timeout or self._timeout,
        ) as response:
            self._check(response, "GET", path)
            with destination.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
                        written += len(chunk)
        return written

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def _check(self, response: requests.Response, method: str, path: str) -> None:
        if response.status_code >= 400:
            self._log.error("GitHub API request failed: %s %s -> %s", method, path, response.status_code)
            response.raise_for_status()

    @staticmethod
    def _extract_next_link(link_header: Optional[str]) -> Optional[str]:
        if not link_header:
            return None
        parts = [p.strip() for p in link_header.split(",")]
        for part in parts:
            if 'rel="next"' in part:
                start = part.find("<") + 1
                end = part.find(">")
                return part[start:end]
        return None
