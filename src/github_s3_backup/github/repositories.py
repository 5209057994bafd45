from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import requests

from github_s3_backup.errors import RepositoryListingError

from .api import GitHubAPI

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryDescriptor:
    name: str
    full_name: str
    default_branch: str

    @property
    def archive_path(self) -> str:
        return f"/repos/{self.full_name}/zipball/{self.default_branch}"


def list_repositories(api: GitHubAPI) -> List[RepositoryDescriptor]:
    """Return every repository visible to the installation token, in listing order."""
    repositories: List[RepositoryDescriptor] = []
    try:
        for item in api.iterate("/installation/repositories", items_key="repositories"):
            full_name = item.get("full_name")
            if not full_name:
                LOG.debug("Skipping repository entry without full_name")
                continue
            repositories.append(
                RepositoryDescriptor(
                    name=item.get("name") or full_name.split("/")[-1],
                    full_name=full_name,
                    default_branch=item.get("default_branch") or "main",
                )
            )
    except (requests.RequestException, ValueError) as exc:
        raise RepositoryListingError(f"Failed to list installation repositories: {exc}") from exc

    LOG.info("Installation can access %d repositories", len(repositories))
    return repositories
