"""GitHub service: teams, memberships, and repository access."""

from __future__ import annotations

from .client import GitHubApiConfig, GitHubRestClient
from .errors import (
    ErrorCategory,
    GitHubAPIError,
    GitHubConfigError,
    categorize_error,
    is_retryable,
)
from .handler import GitHubHandler
from .models import Repository, Role, Visibility

__all__ = [
    "ErrorCategory",
    "GitHubAPIError",
    "GitHubApiConfig",
    "GitHubConfigError",
    "GitHubHandler",
    "GitHubRestClient",
    "Repository",
    "Role",
    "Visibility",
    "categorize_error",
    "is_retryable",
]
