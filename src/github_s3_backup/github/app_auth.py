"""GitHub App authentication: JWT minting and installation token exchange."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import jwt as pyjwt
import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import PyJWTError

from github_s3_backup.errors import AuthError, SigningError

from .api import DEFAULT_API_URL, GitHubAPI

LOG = logging.getLogger(__name__)

JWT_LIFETIME_SECONDS = 600
JWT_ALGORITHM = "RS256"

# Secrets Manager stores the PEM base64-encoded on one line. Anything that
# looks like base64 and decodes to something longer than a short string is
# treated as encoded. Best-effort: unusual inputs can be misclassified.
_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
_ENCODED_PEM_MIN_LENGTH = 500


@dataclass(frozen=True)
class JWT:
    token: str = field(repr=False)
    header: Dict[str, Any]
    payload: Dict[str, Any]

    @property
    def expires_at(self) -> int:
        return int(self.payload["exp"])


@dataclass(frozen=True)
class InstallationToken:
    token: str = field(repr=False)
    expires_at: Optional[datetime]
    installation_id: int


def decode_private_key(value: str) -> str:
    """Return PEM text from either a base64-encoded PEM blob or raw PEM.

    Raw PEM may carry literal ``\\n`` sequences (as stored in env files);
    those are turned into real line breaks.
    """
    candidate = value.strip()
    compact = "".join(candidate.split())
    if _BASE64_PATTERN.match(compact):
        try:
            decoded = base64.b64decode(compact, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            LOG.debug("Private key is not base64 encoded; treating it as PEM text")
        else:
            if len(decoded) > _ENCODED_PEM_MIN_LENGTH:
                return decoded
    return candidate.replace("\\n", "\n")


def load_rsa_private_key(private_key: str) -> rsa.RSAPrivateKey:
    pem = decode_private_key(private_key)
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"GitHub App private key could not be parsed: {exc}") from exc

    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningError(f"GitHub App private key must be an RSA key, got {type(key).__name__}")
    return key


def mint_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> JWT:
    """Build an RS256 JWT valid for ten minutes, issued by ``app_id``."""
    key = load_rsa_private_key(private_key)
    issued_at = int(time.time()) if now is None else int(now)
    payload = {
        "iat": issued_at,
        "exp": issued_at + JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }

    try:
        token = pyjwt.encode(payload, key, algorithm=JWT_ALGORITHM, headers={"typ": "JWT"})
        header = pyjwt.get_unverified_header(token)
    except (PyJWTError, ValueError, TypeError) as exc:
        raise SigningError(f"Signing the GitHub App JWT failed: {exc}") from exc

    LOG.debug("Minted GitHub App JWT for app %s, expires at %s", app_id, payload["exp"])
    return JWT(token=token, header=header, payload=payload)


def exchange_for_installation_token(
    app_jwt: JWT,
    api_url: str = DEFAULT_API_URL,
    timeout: float = 30.0,
    session: Optional[requests.Session] = None,
) -> InstallationToken:
    """Trade the app JWT for an access token scoped to the first installation."""
    api = GitHubAPI(app_jwt.token, base_url=api_url, timeout=timeout, session=session)

    try:
        installations = api.get("/app/installations")
    except (requests.RequestException, ValueError) as exc:
        raise AuthError(f"Listing GitHub App installations failed: {exc}") from exc

    if not isinstance(installations, list):
        raise AuthError("Unexpected response while listing GitHub App installations")
    if not installations:
        raise AuthError("no installations")

    # Single-installation deployment: the first installation is used.
    installation = installations[0]
    installation_id = installation.get("id")
    if installation_id is None:
        raise AuthError("Installation entry is missing its id")
    if len(installations) > 1:
        LOG.warning(
            "GitHub App has %d installations; using the first (id %s)",
            len(installations),
            installation_id,
        )

    account = (installation.get("account") or {}).get("login", "unknown")
    LOG.info("Requesting access token for installation %s (%s)", installation_id, account)

    try:
        data = api.post(f"/app/installations/{installation_id}/access_tokens")
    except (requests.RequestException, ValueError) as exc:
        raise AuthError(f"Installation token request for {installation_id} failed: {exc}") from exc

    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        raise AuthError(f"Installation token response for {installation_id} has no token")

    return InstallationToken(
        token=token,
        expires_at=_parse_timestamp(data.get("expires_at")),
        installation_id=int(installation_id),
    )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        LOG.warning("Unrecognised installation token expiry %r", value)
        return None
