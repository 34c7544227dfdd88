"""Legacy configuration format: Sheriff permissions and CNCF people files.

The Sheriff permissions file declares teams (and, for the GitHub service,
repositories); the optional CNCF people file lists user profiles. Both are
loaded with a YAML 1.2 safe loader, decoded with msgspec, then validated.
Problems are collected as issues instead of stopping at the first one, and
the partially built directory travels with the raised
:class:`~clowarden.errors.ConfigurationError`.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from clowarden.errors import ConfigurationError

from .models import TEAM_NAME_PATTERN, Directory, Team

if typ.TYPE_CHECKING:
    import collections.abc as cabc

YAML_VERSION = (1, 2)


class SheriffTeam(msgspec.Struct, kw_only=True):
    """Team entry as written in the Sheriff permissions file."""

    name: str = ""
    maintainers: list[str] | None = None
    members: list[str] | None = None
    formation: list[str] | None = None


class Person(msgspec.Struct, kw_only=True):
    """Profile entry of the CNCF people file; only identity fields are kept."""

    name: str = ""
    github: str | None = None
    email: str | None = None
    company: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class LegacyDocuments:
    """Raw documents read from the configuration repository."""

    permissions: cabc.Mapping[str, typ.Any]
    people: list[typ.Any] | None = None


def load_yaml_document(text: str, *, source: str) -> dict[str, typ.Any]:
    """Parse a YAML mapping document.

    Raises
    ------
    ConfigurationError
        If the text is not valid YAML or is not a mapping.

    """
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    try:
        loaded = yaml.load(text)
    except YAMLError as exc:
        raise ConfigurationError.single(f"error parsing {source}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError.single(f"{source} must contain a mapping")
    return loaded


def load_people_document(text: str, *, source: str) -> list[typ.Any]:
    """Parse the CNCF people JSON list."""
    try:
        loaded = msgspec.json.decode(text)
    except msgspec.DecodeError as exc:
        raise ConfigurationError.single(f"error parsing {source}: {exc}") from exc
    if not isinstance(loaded, list):
        raise ConfigurationError.single(f"{source} must contain a list")
    return loaded


def _decode_teams(raw: object, issues: list[str]) -> list[SheriffTeam]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        issues.append("teams must be a list")
        return []
    teams: list[SheriffTeam] = []
    for index, entry in enumerate(raw):
        try:
            teams.append(msgspec.convert(entry, type=SheriffTeam))
        except msgspec.ValidationError as exc:
            issues.append(f"team[{index}]: {exc}")
    return teams


def resolve_formation(
    teams: list[SheriffTeam], issues: list[str]
) -> list[SheriffTeam]:
    """Expand composite teams with their formation teams' users.

    Resolution is not recursive: sources are always read from the teams as
    declared, so a formation entry that is itself composite contributes only
    its explicitly listed users. Unknown formation names are appended to
    ``issues`` and contribute nothing.
    Maintainer and member lists are then de-duplicated and sorted.
    """
    declared = {team.name: team for team in teams}
    resolved: list[SheriffTeam] = []
    for team in teams:
        maintainers = list(team.maintainers) if team.maintainers is not None else None
        members = list(team.members) if team.members is not None else None
        for source_name in team.formation or []:
            source = declared.get(source_name)
            if source is None:
                issues.append(
                    f"team[{team.name}]: formation team {source_name} does not exist"
                )
                continue
            if source.maintainers is not None:
                maintainers = (maintainers or []) + source.maintainers
            if source.members is not None:
                members = (members or []) + source.members
        resolved.append(
            SheriffTeam(
                name=team.name,
                maintainers=sorted(set(maintainers)) if maintainers is not None else None,
                members=sorted(set(members)) if members is not None else None,
                formation=team.formation,
            )
        )
    return resolved


def validate_teams(teams: list[SheriffTeam]) -> tuple[list[Team], list[str]]:
    """Check team entries and return the valid ones with the issues found.

    A user listed both as maintainer and member is accepted; services whose
    teams give one role per user keep the maintainer role.
    """
    issues: list[str] = []
    valid: list[Team] = []
    seen: set[str] = set()
    for index, team in enumerate(teams):
        team_id = team.name or str(index)
        if not team.name:
            issues.append(f"team[{team_id}]: name must be provided")
            continue
        problems: list[str] = []
        if not TEAM_NAME_PATTERN.match(team.name):
            problems.append(
                f"team[{team_id}]: name must be lowercase alphanumeric with dashes"
                " (team slug)"
            )
        if team.name in seen:
            issues.append(f"team[{team_id}]: duplicate config for team {team.name}")
            continue
        seen.add(team.name)
        if not team.maintainers:
            problems.append(f"team[{team_id}]: must have at least one maintainer")
        if problems:
            issues.extend(problems)
            continue
        valid.append(
            Team(
                name=team.name,
                maintainers=frozenset(team.maintainers or ()),
                members=frozenset(team.members or ()),
            )
        )
    return valid, issues


def _people_logins(raw: list[typ.Any] | None, issues: list[str]) -> set[str]:
    logins: set[str] = set()
    for index, entry in enumerate(raw or []):
        try:
            person = msgspec.convert(entry, type=Person)
        except msgspec.ValidationError as exc:
            issues.append(f"user[{index}]: {exc}")
            continue
        if not person.name:
            issues.append(f"user[{index}]: name must be provided")
            continue
        if person.github:
            logins.add(person.github.rstrip("/").rsplit("/", 1)[-1])
    return logins


def build_directory(documents: LegacyDocuments) -> Directory:
    """Build the desired directory from the legacy documents.

    Raises
    ------
    ConfigurationError
        With ``partial`` set to the directory made of the valid teams, when
        any entry fails validation.

    """
    issues: list[str] = []
    sheriff_teams = resolve_formation(
        _decode_teams(documents.permissions.get("teams"), issues), issues
    )
    teams, team_issues = validate_teams(sheriff_teams)
    issues.extend(team_issues)
    users = _people_logins(documents.people, issues)
    for team in teams:
        users.update(team.users)

    directory = Directory.from_teams(teams, users=users)
    if issues:
        raise ConfigurationError(
            [f"invalid directory configuration: {issue}" for issue in issues],
            partial=directory,
        )
    return directory
