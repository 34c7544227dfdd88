"""GitHub service state: desired projection, live fetch, and repository diff.

The desired state is the shared directory plus the declared repositories,
adjusted to how GitHub behaves: organization admins are always team
maintainers and never direct collaborators, and archived repositories
cannot be changed. The actual state is read with the REST client, counting
pending team and repository invitations as if they had been accepted so a
run does not re-invite users who have not answered yet.
"""

from __future__ import annotations

import asyncio
import re
import typing as typ

from clowarden.changes import Change
from clowarden.directory import Directory, Team
from clowarden.errors import ConfigurationError
from clowarden.services.protocol import ServiceState

from .changes import (
    RepositoryAdded,
    RepositoryCollaboratorAdded,
    RepositoryCollaboratorRemoved,
    RepositoryCollaboratorRoleUpdated,
    RepositoryTeamAdded,
    RepositoryTeamRemoved,
    RepositoryTeamRoleUpdated,
    RepositoryVisibilityUpdated,
)
from .errors import GitHubResponseShapeError
from .legacy import ISSUE_PREFIX
from .models import Repositories, Repository, Role, Visibility

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .client import GitHubRestClient, JSONObject

SERVICE_NAME = "github"

GHSA_TEMP_FORK = re.compile(r"^(.+)-ghsa(-[23456789cfghjmpqrvwx]{4}){3}$")

_MAX_CONCURRENT_FETCHES = 4


def is_temporary_fork(repo_name: str) -> bool:
    """Return True for private forks GitHub creates for security advisories."""
    return GHSA_TEMP_FORK.match(repo_name) is not None


def repositories_of(state: ServiceState) -> Repositories:
    """Return the repositories carried by a GitHub service state."""
    return typ.cast("Repositories", state.resources or {})


# Desired state


def _single_team_roles(directory: Directory, org_admins: cabc.Set[str]) -> Directory:
    """Give every team user exactly one GitHub role.

    A team membership carries one role, so organization admins and users
    listed in both lists become maintainers only.
    """
    teams = []
    for team in directory.teams.values():
        promoted = team.members & (org_admins | team.maintainers)
        teams.append(
            Team(
                name=team.name,
                display_name=team.display_name,
                maintainers=team.maintainers | promoted,
                members=team.members - promoted,
            )
        )
    return Directory.from_teams(teams, users=directory.users)


def _highest_team_role(
    directory: Directory, repo: Repository, user_name: str
) -> tuple[str, Role] | None:
    highest: tuple[str, Role] | None = None
    for team_name, role in repo.teams.items():
        team = directory.get_team(team_name)
        if team is None or user_name not in team.users:
            continue
        if highest is None or role.outranks(highest[1]):
            highest = (team_name, role)
    return highest


def validate_desired(
    directory: Directory,
    repositories: Repositories,
    *,
    org_members: cabc.Set[str],
) -> list[str]:
    """Return the problems only the live organization can reveal."""
    issues = [
        f"team[{team.name}]: {user_name} must be an organization member to be "
        "a maintainer"
        for team in directory.teams.values()
        for user_name in sorted(team.maintainers)
        if user_name not in org_members
    ]
    for repo in repositories.values():
        issues.extend(
            f"repo[{repo.name}]: team {team_name} does not exist in directory"
            for team_name in repo.teams
            if directory.get_team(team_name) is None
        )
        for user_name, user_role in repo.collaborators.items():
            highest = _highest_team_role(directory, repo, user_name)
            if highest is not None and highest[1].outranks(user_role):
                team_name, team_role = highest
                issues.append(
                    f"repo[{repo.name}]: collaborator {user_name} already has "
                    f"{team_role} access from team {team_name}"
                )
    return issues


def project_desired(
    directory: Directory,
    repositories: cabc.Iterable[Repository],
    *,
    org_admins: cabc.Set[str],
    org_members: cabc.Set[str],
    archived: cabc.Set[str],
) -> ServiceState:
    """Adjust the declared state to GitHub's rules and validate it.

    Raises
    ------
    ConfigurationError
        With ``partial`` set to the projected state, when a maintainer is not
        an organization member, a repository references an unknown team, or
        a collaborator is granted less than a team already gives them.

    """
    projected_directory = _single_team_roles(directory, org_admins)
    projected: Repositories = {}
    for repo in repositories:
        if repo.name in archived:
            continue
        projected[repo.name] = Repository.build(
            repo.name,
            visibility=repo.visibility,
            teams=repo.teams,
            collaborators={
                user_name: role
                for user_name, role in repo.collaborators.items()
                if user_name not in org_admins
            },
        )
    projected = {name: projected[name] for name in sorted(projected)}
    state = ServiceState(directory=projected_directory, resources=projected)

    issues = validate_desired(
        projected_directory, projected, org_members=org_members
    )
    if issues:
        raise ConfigurationError(
            [f"{ISSUE_PREFIX}{issue}" for issue in issues], partial=state
        )
    return state


# Actual state


def _login(entry: JSONObject) -> str:
    login = entry.get("login")
    if not isinstance(login, str):
        raise GitHubResponseShapeError.missing("login")
    return login


async def _gather_bounded[T](
    coroutines: cabc.Iterable[cabc.Awaitable[T]],
) -> list[T]:
    """Run coroutines with bounded concurrency; raise the first failure."""
    semaphore = asyncio.Semaphore(_MAX_CONCURRENT_FETCHES)

    async def bounded(coroutine: cabc.Awaitable[T]) -> T:
        async with semaphore:
            return await coroutine

    gathered = await asyncio.gather(
        *(bounded(coroutine) for coroutine in coroutines), return_exceptions=True
    )
    results: list[T] = []
    for result in gathered:
        if isinstance(result, BaseException):
            raise result
        results.append(result)
    return results


async def _fetch_team(client: GitHubRestClient, org: str, entry: JSONObject) -> Team:
    slug = entry.get("slug")
    if not isinstance(slug, str):
        raise GitHubResponseShapeError.missing("slug")
    maintainers = {
        _login(user)
        for user in await client.list_team_members(org, slug, role="maintainer")
    }
    members = {
        _login(user) for user in await client.list_team_members(org, slug, role="member")
    }
    for invitation in await client.list_team_invitations(org, slug):
        login = _login(invitation)
        membership = await client.get_team_membership(org, slug, login)
        if membership is None or membership.get("state") != "pending":
            continue
        if membership.get("role") == "maintainer":
            maintainers.add(login)
        elif membership.get("role") == "member":
            members.add(login)
    return Team(
        name=slug,
        display_name=entry.get("name"),
        maintainers=frozenset(maintainers),
        members=frozenset(members),
    )


async def _fetch_repository(
    client: GitHubRestClient,
    org: str,
    entry: JSONObject,
    org_admins: cabc.Set[str],
) -> Repository:
    name = entry["name"]
    collaborators = {
        _login(user): Role.from_flags(user.get("permissions"))
        for user in await client.list_repository_collaborators(org, name)
        if _login(user) not in org_admins
    }
    for invitation in await client.list_repository_invitations(org, name):
        invitee = invitation.get("invitee")
        if invitee:
            collaborators[_login(invitee)] = Role.from_api(invitation.get("permissions"))
    teams = {
        team["slug"]: Role.from_api(team.get("permission"))
        for team in await client.list_repository_teams(org, name)
    }
    return Repository.build(
        name,
        visibility=Visibility.from_api(entry.get("visibility")),
        teams=teams,
        collaborators=collaborators,
    )


def is_managed_repository(entry: JSONObject) -> bool:
    """Return False for repositories reconciliation must leave alone."""
    name = entry.get("name")
    if not isinstance(name, str):
        raise GitHubResponseShapeError.missing("name")
    return not entry.get("archived", False) and not is_temporary_fork(name)


async def fetch_actual(client: GitHubRestClient, org: str) -> ServiceState:
    """Read the organization's teams and repositories from GitHub."""
    team_entries = await client.list_teams(org)
    teams = await _gather_bounded(
        _fetch_team(client, org, entry) for entry in team_entries
    )
    org_admins = {
        _login(user) for user in await client.list_org_members(org, role="admin")
    }
    repo_entries = [
        entry
        for entry in await client.list_repositories(org)
        if is_managed_repository(entry)
    ]
    repositories = await _gather_bounded(
        _fetch_repository(client, org, entry, org_admins) for entry in repo_entries
    )
    users: set[str] = set()
    for team in teams:
        users.update(team.users)
    return ServiceState(
        directory=Directory.from_teams(teams, users=users),
        resources={repo.name: repo for repo in sorted(repositories, key=_repo_name)},
    )


def _repo_name(repo: Repository) -> str:
    return repo.name


# Diff


def _team_access_changes(desired: Repository, actual: Repository) -> list[Change]:
    changes: list[Change] = []
    for team_name in sorted(desired.teams.keys() - actual.teams.keys()):
        changes.append(
            Change(
                SERVICE_NAME,
                RepositoryTeamAdded(
                    repo_name=desired.name,
                    team_name=team_name,
                    role=desired.teams[team_name],
                ),
            )
        )
    for team_name in sorted(actual.teams.keys() - desired.teams.keys()):
        changes.append(
            Change(
                SERVICE_NAME,
                RepositoryTeamRemoved(repo_name=desired.name, team_name=team_name),
            )
        )
    for team_name in sorted(desired.teams.keys() & actual.teams.keys()):
        role = desired.teams[team_name]
        if role != actual.teams[team_name]:
            changes.append(
                Change(
                    SERVICE_NAME,
                    RepositoryTeamRoleUpdated(
                        repo_name=desired.name, team_name=team_name, role=role
                    ),
                )
            )
    return changes


def _collaborator_changes(desired: Repository, actual: Repository) -> list[Change]:
    desired_users = desired.collaborators
    actual_users = actual.collaborators
    changes: list[Change] = []
    for user_name in sorted(desired_users.keys() - actual_users.keys()):
        changes.append(
            Change(
                SERVICE_NAME,
                RepositoryCollaboratorAdded(
                    repo_name=desired.name,
                    user_name=user_name,
                    role=desired_users[user_name],
                ),
            )
        )
    for user_name in sorted(actual_users.keys() - desired_users.keys()):
        changes.append(
            Change(
                SERVICE_NAME,
                RepositoryCollaboratorRemoved(
                    repo_name=desired.name, user_name=user_name
                ),
            )
        )
    for user_name in sorted(desired_users.keys() & actual_users.keys()):
        role = desired_users[user_name]
        if role != actual_users[user_name]:
            changes.append(
                Change(
                    SERVICE_NAME,
                    RepositoryCollaboratorRoleUpdated(
                        repo_name=desired.name, user_name=user_name, role=role
                    ),
                )
            )
    return changes


def diff_repositories(desired: Repositories, actual: Repositories) -> list[Change]:
    """Return repository changes turning ``actual`` into ``desired``, unordered.

    Repositories only present on GitHub are left alone: removing a
    repository is never automated.
    """
    changes: list[Change] = []
    for name in sorted(desired):
        wanted = desired[name]
        current = actual.get(name)
        if current is None:
            changes.append(Change(SERVICE_NAME, RepositoryAdded(repo=wanted)))
            continue
        changes.extend(_team_access_changes(wanted, current))
        changes.extend(_collaborator_changes(wanted, current))
        if wanted.visibility != current.visibility:
            changes.append(
                Change(
                    SERVICE_NAME,
                    RepositoryVisibilityUpdated(
                        repo_name=name, visibility=wanted.visibility
                    ),
                )
            )
    return changes
