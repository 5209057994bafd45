"""Error taxonomy shared by the backup and restore workflows."""

from __future__ import annotations


class BackupError(Exception):
    """Base class for all errors raised by this package."""


class FatalError(BackupError):
    """Aborts the current run. ``step`` names the operation that failed."""

    step = "operation"


class ConfigurationError(FatalError):
    """Raised when required configuration is missing or unparsable."""

    step = "configuration"


class SigningError(FatalError):
    """Raised when the GitHub App private key cannot be loaded or used to sign."""

    step = "JWT signing"


class AuthError(FatalError):
    """Raised when the installation token exchange fails."""

    step = "GitHub App authentication"


class RepositoryListingError(FatalError):
    """Raised when the installation repositories cannot be listed."""

    step = "repository listing"


class CatalogError(FatalError):
    """Raised when the backup bucket cannot be listed."""

    step = "backup catalog"


class RestoreError(FatalError):
    """Raised when the restore destination cannot be created."""

    step = "restore destination"


class ParseError(BackupError):
    """Raised for an invalid restore selection; the user is asked again."""


class ItemError(BackupError):
    """Raised when a single repository backup or archive restore fails."""
