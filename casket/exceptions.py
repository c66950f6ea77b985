"""
Exception hierarchy for casket.

Errors fall into two tiers. Per-file errors are caught by the importer, logged
as warnings and turned into a skipped outcome. Run-fatal errors propagate to
the CLI and abort the run with a non-zero exit status.
"""


class CasketError(Exception):
    """Base exception for all casket errors."""
    pass


# --- Per-file errors ---

class FileSkipError(CasketError):
    """Base for errors that skip a single file but let the run continue."""
    stage = "unknown"


class ConversionError(FileSkipError):
    """Raised when the external image converter fails."""
    stage = "thumbnail"


class ThumbnailError(FileSkipError):
    """Raised when every decode strategy for a file has failed."""
    stage = "thumbnail"

    def __init__(self, path, attempts):
        self.path = path
        # list of (strategy_name, error message)
        self.attempts = list(attempts)
        if self.attempts:
            detail = "; ".join(f"{name}: {err}" for name, err in self.attempts)
        else:
            detail = "no decode strategy for this file kind"
        super().__init__(f"Could not build thumbnail for {path} ({detail})")


class FileOperationError(FileSkipError):
    """Raised when copying the original or writing the thumbnail fails."""
    stage = "archive"


class DuplicateEntryError(FileSkipError):
    """Raised when the catalog already holds a row for an original path."""
    stage = "catalog"

    def __init__(self, original_path):
        self.original_path = original_path
        super().__init__(f"Already cataloged: {original_path}")


# --- Run-fatal errors ---

class FatalError(CasketError):
    """Base for errors that abort the whole run."""
    pass


class ConfigError(FatalError):
    """Raised when the catalog settings are missing or invalid."""
    pass


class DatabaseError(FatalError):
    """Raised when the catalog database cannot be opened or initialized."""
    pass


class ScanError(FatalError):
    """Raised when the source root cannot be scanned at all."""
    pass
