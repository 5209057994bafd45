from .api import GitHubAPI
from .app_auth import (
    JWT,
    InstallationToken,
    decode_private_key,
    exchange_for_installation_token,
    mint_jwt,
)
from .repositories import RepositoryDescriptor, list_repositories

__all__ = [
    "GitHubAPI",
    "JWT",
    "InstallationToken",
    "decode_private_key",
    "mint_jwt",
    "exchange_for_installation_token",
    "RepositoryDescriptor",
    "list_repositories",
]
