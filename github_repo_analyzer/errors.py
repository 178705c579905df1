"""Exception types shared by the client, scanner and analysis engine."""


class AnalyzerError(Exception):
    """Base class for all analyzer errors."""


class InvalidRepositoryRef(AnalyzerError, ValueError):
    """The repository reference could not be parsed."""


class FetchFailed(AnalyzerError):
    """A request for a path in the repository did not succeed."""

    def __init__(self, path: str, cause: object = None, message: str | None = None):
        self.path = path
        self.cause = cause
        super().__init__(message or f"Fetch failed for {path or '/'}: {cause}")


class TransientFetchError(FetchFailed):
    """Network error or 5xx response that persisted through every retry."""

    def __init__(self, path: str, cause: object = None, attempts: int = 0):
        self.attempts = attempts
        super().__init__(path, cause, f"Fetch failed for {path or '/'} after {attempts} attempts: {cause}")


class PermanentFetchError(FetchFailed):
    """Non-retryable failure: not found, forbidden, malformed response."""

    def __init__(self, path: str, kind: str, cause: object = None, status: int | None = None):
        self.kind = kind
        self.status = status
        super().__init__(path, cause, f"Fetch failed for {path or '/'} ({kind}): {cause}")


class RateLimited(FetchFailed):
    """The request stayed throttled past the retry budget."""


class ParseError(AnalyzerError):
    """A source file could not be scanned. Converted to a warning by the engine."""


class InvariantViolation(AnalyzerError):
    """Internal contract between components was broken."""


class Cancelled(AnalyzerError):
    """The analysis was cancelled before it completed."""
