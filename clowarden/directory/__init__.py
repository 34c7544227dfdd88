"""Directory model and the legacy configuration loader that builds it."""

from __future__ import annotations

from .legacy import LegacyDocuments, build_directory, resolve_formation
from .models import TEAM_NAME_PATTERN, Directory, Team, TeamName, UserName

__all__ = [
    "TEAM_NAME_PATTERN",
    "Directory",
    "LegacyDocuments",
    "Team",
    "TeamName",
    "UserName",
    "build_directory",
    "resolve_formation",
]
