"""Repositories declared in the Sheriff permissions file."""

from __future__ import annotations

import typing as typ

import msgspec

from clowarden.directory import TEAM_NAME_PATTERN
from clowarden.errors import ConfigurationError

from .models import Repository, Role, Visibility

if typ.TYPE_CHECKING:
    import collections.abc as cabc

ISSUE_PREFIX = "invalid github service configuration: "


class SheriffRepository(msgspec.Struct, kw_only=True):
    """Repository entry as written in the permissions file.

    ``external_collaborators`` is accepted as a synonym of ``collaborators``.
    """

    name: str = ""
    visibility: Visibility | None = None
    teams: dict[str, Role] | None = None
    collaborators: dict[str, Role] | None = None


def _normalise_entry(entry: object) -> object:
    if not isinstance(entry, dict) or "external_collaborators" not in entry:
        return entry
    normalised = dict(entry)
    external = normalised.pop("external_collaborators")
    normalised.setdefault("collaborators", external)
    return normalised


def _decode_repositories(raw: object, issues: list[str]) -> list[SheriffRepository]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        issues.append("repositories must be a list")
        return []
    repositories: list[SheriffRepository] = []
    for index, entry in enumerate(raw):
        try:
            repositories.append(
                msgspec.convert(_normalise_entry(entry), type=SheriffRepository)
            )
        except msgspec.ValidationError as exc:
            issues.append(f"repo[{index}]: {exc}")
    return repositories


def parse_repositories(permissions: cabc.Mapping[str, typ.Any]) -> list[Repository]:
    """Decode and check the ``repositories`` section.

    Raises
    ------
    ConfigurationError
        With ``partial`` set to the repositories that passed every check.

    """
    issues: list[str] = []
    valid: list[Repository] = []
    seen: set[str] = set()
    for index, repo in enumerate(
        _decode_repositories(permissions.get("repositories"), issues)
    ):
        repo_id = repo.name or str(index)
        if not repo.name:
            issues.append(f"repo[{repo_id}]: name must be provided")
            continue
        if repo.name in seen:
            issues.append(f"repo[{repo_id}]: duplicate config for repo {repo.name}")
            continue
        seen.add(repo.name)

        bad_teams = [
            team_name
            for team_name in (repo.teams or {})
            if not TEAM_NAME_PATTERN.match(team_name)
        ]
        issues.extend(
            f"repo[{repo_id}]: team[{team_name}] name must be lowercase "
            "alphanumeric with dashes (team slug)"
            for team_name in bad_teams
        )
        if bad_teams:
            continue

        valid.append(
            Repository.build(
                repo.name,
                visibility=repo.visibility or Visibility.PUBLIC,
                teams=repo.teams,
                collaborators=repo.collaborators,
            )
        )

    if issues:
        raise ConfigurationError(
            [f"{ISSUE_PREFIX}{issue}" for issue in issues], partial=valid
        )
    return valid
