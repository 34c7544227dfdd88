"""Directory of teams and users shared by every service handler."""

from __future__ import annotations

import collections.abc as cabc
import re

import msgspec

type UserName = str
type TeamName = str

TEAM_NAME_PATTERN = re.compile(r"^[a-z0-9\-]+$")


class Team(msgspec.Struct, frozen=True, kw_only=True):
    """Team with its maintainers and members.

    Attributes
    ----------
    name : str
        Team slug, unique within an organization.
    display_name : str, optional
        Human-friendly name reported by the service, if any.
    maintainers : frozenset[str]
        Logins allowed to manage the team.
    members : frozenset[str]
        Regular team members. A login may also appear in ``maintainers``.

    """

    name: TeamName
    display_name: str | None = None
    maintainers: frozenset[UserName] = msgspec.field(default_factory=frozenset)
    members: frozenset[UserName] = msgspec.field(default_factory=frozenset)

    @property
    def users(self) -> frozenset[UserName]:
        """Return every login referenced by the team."""
        return self.maintainers | self.members


class Directory(msgspec.Struct, frozen=True, kw_only=True):
    """Snapshot of an organization's teams and known users.

    Instances are treated as immutable: builders assemble a fresh snapshot
    for every reconciliation run instead of editing an existing one.
    """

    teams: dict[TeamName, Team] = msgspec.field(default_factory=dict)
    users: frozenset[UserName] = msgspec.field(default_factory=frozenset)

    @classmethod
    def from_teams(
        cls,
        teams: cabc.Iterable[Team],
        *,
        users: cabc.Iterable[UserName] = (),
    ) -> Directory:
        """Build a directory keyed by team name, sorted for stable output."""
        by_name = {team.name: team for team in teams}
        return cls(
            teams={name: by_name[name] for name in sorted(by_name)},
            users=frozenset(users),
        )

    def get_team(self, name: TeamName) -> Team | None:
        """Return the named team, or ``None`` when absent."""
        return self.teams.get(name)

    def replace_team(self, team: Team) -> Directory:
        """Return a copy of the directory with ``team`` substituted."""
        teams = dict(self.teams)
        teams[team.name] = team
        return Directory.from_teams(teams.values(), users=self.users)
