"""GitHub service errors and their retry classification."""

from __future__ import annotations

import enum

_HTTP_NOT_FOUND = 404
_HTTP_FORBIDDEN = 403
_HTTP_TOO_MANY_REQUESTS = 429
_HTTP_SERVER_ERROR_THRESHOLD = 500


class ErrorCategory(enum.StrEnum):
    """How a failed GitHub call should be treated."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class GitHubAPIError(RuntimeError):
    """Raised when GitHub answers with an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        rate_limited: bool = False,
    ) -> None:
        """Initialise with a message, the HTTP status, and a rate-limit flag."""
        self.status_code = status_code
        self.rate_limited = rate_limited
        super().__init__(message)

    @classmethod
    def http_error(
        cls,
        method: str,
        path: str,
        status_code: int,
        *,
        rate_limited: bool = False,
    ) -> GitHubAPIError:
        """Return an error for a non-2xx REST response."""
        return cls(
            f"GitHub REST {method} {path} failed with HTTP {status_code}",
            status_code=status_code,
            rate_limited=rate_limited,
        )

    @classmethod
    def network_error(cls, method: str, path: str, cause: Exception) -> GitHubAPIError:
        """Return an error for a request that never got a response."""
        return cls(f"GitHub REST {method} {path} failed: {cause}")

    @property
    def is_not_found(self) -> bool:
        """Return True for HTTP 404 responses."""
        return self.status_code == _HTTP_NOT_FOUND


class GitHubConfigError(RuntimeError):
    """Raised when the GitHub client configuration is invalid."""

    @classmethod
    def missing_token(cls) -> GitHubConfigError:
        """Return an error when no token is configured."""
        return cls("CLOWARDEN_GITHUB_TOKEN is required for the GitHub service")

    @classmethod
    def empty_token(cls) -> GitHubConfigError:
        """Return an error when the provided token is blank."""
        return cls("GitHub token must be non-empty")


class GitHubResponseShapeError(RuntimeError):
    """Raised when a REST payload lacks an expected field."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitHub REST response missing expected field: {field}")


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Classify an exception raised while talking to GitHub.

    Network failures and 5xx responses are transient; 429 responses and 403
    responses flagged as rate limited are rate limits; everything else is a
    permanent failure that retrying will not fix.
    """
    if isinstance(exc, GitHubConfigError):
        return ErrorCategory.CONFIGURATION
    if not isinstance(exc, GitHubAPIError):
        return ErrorCategory.UNKNOWN
    status = exc.status_code
    if status is None or status >= _HTTP_SERVER_ERROR_THRESHOLD:
        return ErrorCategory.TRANSIENT
    if status == _HTTP_TOO_MANY_REQUESTS or (
        status == _HTTP_FORBIDDEN and exc.rate_limited
    ):
        return ErrorCategory.RATE_LIMITED
    if status == _HTTP_NOT_FOUND:
        return ErrorCategory.NOT_FOUND
    return ErrorCategory.CLIENT_ERROR


def is_retryable(exc: BaseException) -> bool:
    """Return True when retrying the failed call may succeed."""
    return categorize_error(exc) in {ErrorCategory.TRANSIENT, ErrorCategory.RATE_LIMITED}


class UnsupportedChangeError(TypeError):
    """Raised when the GitHub handler is asked to apply a foreign change."""

    @classmethod
    def for_kind(cls, kind: str) -> UnsupportedChangeError:
        """Return an error for a change kind the handler cannot apply."""
        return cls(f"github service cannot apply {kind} changes")
