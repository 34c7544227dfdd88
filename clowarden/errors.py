"""Errors raised by the reconciliation engine."""

from __future__ import annotations

import typing as typ


class ReconciliationError(Exception):
    """Base class for reconciliation engine errors."""


class ConfigurationError(ReconciliationError):
    """Raised when the declared configuration fails validation.

    Parameters
    ----------
    issues
        Human-readable problems found in the configuration.
    partial
        Whatever state could still be built from the configuration, so
        validation runs can report a best-effort diff.

    """

    issues: tuple[str, ...]
    partial: typ.Any

    def __init__(self, issues: typ.Iterable[str], *, partial: object = None) -> None:
        """Capture the issues and the partially built state."""
        self.issues = tuple(issues)
        self.partial = partial
        super().__init__("\n".join(self.issues) or "invalid configuration")

    @classmethod
    def single(cls, issue: str, *, partial: object = None) -> ConfigurationError:
        """Return an error carrying one issue."""
        return cls([issue], partial=partial)


class StateFetchError(ReconciliationError):
    """Raised when desired or actual state cannot be read at all."""

    def __init__(self, message: str, *, service: str | None = None) -> None:
        """Initialise with a message and the service that failed, if any."""
        self.service = service
        super().__init__(message)

    @classmethod
    def for_service(cls, service: str, cause: BaseException) -> StateFetchError:
        """Return an error for a handler that could not read actual state."""
        return cls(
            f"error getting actual state from service {service}: {cause}",
            service=service,
        )

    @classmethod
    def for_desired(cls, cause: BaseException) -> StateFetchError:
        """Return an error for an unreachable configuration source."""
        return cls(f"error getting desired state from configuration: {cause}")


class ReconciliationInProgressError(ReconciliationError):
    """Raised when an organization already has a run holding its lock."""

    def __init__(self, organization: str) -> None:
        """Initialise with the busy organization."""
        self.organization = organization
        super().__init__(f"reconciliation already in progress for {organization}")


class OrganizationNotFoundError(ReconciliationError):
    """Raised when an organization is not present in the configuration."""

    def __init__(self, organization: str) -> None:
        """Initialise with the unknown organization name."""
        self.organization = organization
        super().__init__(f"organization {organization} is not configured")
