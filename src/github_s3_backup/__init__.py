"""Back up GitHub App installation repositories to S3 and restore them."""

from __future__ import annotations

from .config import BackupSettings, load_settings  # noqa: F401
from .orchestrator import run_backup  # noqa: F401
