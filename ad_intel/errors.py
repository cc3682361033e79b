"""Error types raised by the ingestion pipeline.

The orchestrator catches these at each step, records the message on the
brand row and turns them into an ``IngestResult``; they only escape to
callers that use the lower-level pieces directly.
"""

from typing import Optional


class AdIntelError(Exception):
    """Base class for pipeline errors."""


class ValidationError(AdIntelError):
    """Required input is missing or malformed. Raised before any I/O."""


class ProviderError(AdIntelError):
    """The ad-archive provider failed or returned something unusable."""

    BODY_SNIPPET_LENGTH = 500

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body[: self.BODY_SNIPPET_LENGTH] if body else body
        if status_code is not None:
            message = f"{message}: {status_code}"
            if self.body:
                message = f"{message} - {self.body}"
        super().__init__(message)


class EmptyResultError(AdIntelError):
    """The fetch succeeded but no valid items were left after filtering."""


class WriteVerificationError(AdIntelError):
    """Rows were upserted but a re-count for the brand came back zero."""


class StorageError(AdIntelError):
    """A read or write against the database failed."""
