"""Exception hierarchy for the note ingestion pipeline."""


class NoteLogError(Exception):
    """Base class for all notelog errors."""


class ExtractionError(NoteLogError):
    """A note file could not be read or its format could not be decoded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not extract text from {path}: {reason}")


class StoreError(NoteLogError):
    """A per-language store operation failed (constraint, IO, connection)."""


class InvalidBatchRequest(NoteLogError):
    """The batch entry point was called without a language or without files."""


class ProviderError(NoteLogError):
    """Base class for errors raised by an LLM provider call."""

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.details = details


class RateLimitedError(ProviderError):
    """The provider refused the call because of rate limiting / quota (HTTP 429)."""


class TransientProviderError(ProviderError):
    """Network-level failure worth retrying (reset, abort, timeout)."""


class ResponseTruncatedError(ProviderError):
    """The model stopped at its output token limit; the response is incomplete."""
