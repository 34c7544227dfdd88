"""GitHub implementation of the service handler protocol."""

from __future__ import annotations

import typing as typ

from clowarden.changes import (
    TeamAdded,
    TeamMaintainerAdded,
    TeamMaintainerRemoved,
    TeamMemberAdded,
    TeamMemberRemoved,
    TeamRemoved,
)
from clowarden.logging import get_logger, log_debug

from . import state
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
from .errors import GitHubAPIError, UnsupportedChangeError
from .legacy import parse_repositories
from .models import Repository, Role

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from clowarden.changes import Change
    from clowarden.config import OrganizationConfig
    from clowarden.desired import DesiredState
    from clowarden.directory import LegacyDocuments
    from clowarden.services.protocol import ServiceState

    from .client import GitHubRestClient

logger = get_logger(__name__)


async def _ignore_not_found(call: cabc.Awaitable[None]) -> None:
    """Await a removal, treating an already missing target as removed."""
    try:
        await call
    except GitHubAPIError as exc:
        if not exc.is_not_found:
            raise


class GitHubHandler:
    """Reconciles teams and repositories of GitHub organizations.

    Parameters
    ----------
    client
        REST client shared by every organization. Its read cache keeps the
        many list calls of one run cheap.

    """

    def __init__(self, client: GitHubRestClient) -> None:
        """Store the REST client."""
        self._client = client

    @property
    def name(self) -> str:
        """Return ``github``."""
        return state.SERVICE_NAME

    async def aclose(self) -> None:
        """Release the REST client."""
        await self._client.aclose()

    def parse_resources(self, documents: LegacyDocuments) -> list[Repository]:
        """Decode the repositories declared in the permissions file."""
        return parse_repositories(documents.permissions)

    async def project_desired(
        self,
        org: OrganizationConfig,
        desired: DesiredState,
    ) -> ServiceState:
        """Apply GitHub's rules to the declared state and validate it."""
        repositories = typ.cast(
            "list[Repository]", desired.service_resources.get(self.name) or []
        )
        org_admins = {
            user["login"]
            for user in await self._client.list_org_members(org.name, role="admin")
        }
        org_members = {
            user["login"] for user in await self._client.list_org_members(org.name)
        }
        archived = {
            repo["name"]
            for repo in await self._client.list_repositories(org.name)
            if repo.get("archived", False)
        }
        return state.project_desired(
            desired.directory,
            repositories,
            org_admins=org_admins,
            org_members=org_members,
            archived=archived,
        )

    async def fetch_actual_state(self, org: OrganizationConfig) -> ServiceState:
        """Read teams and repositories from GitHub."""
        return await state.fetch_actual(self._client, org.name)

    def diff_resources(
        self,
        desired: ServiceState,
        actual: ServiceState,
    ) -> list[Change]:
        """Return the repository changes between two GitHub states."""
        return state.diff_repositories(
            state.repositories_of(desired), state.repositories_of(actual)
        )

    async def apply_change(self, org: OrganizationConfig, change: Change) -> None:
        """Apply one change to the organization."""
        log_debug(logger, "Applying %s to %s", change.kind, org.name)
        match change.details:
            case TeamAdded(team_name=team_name):
                await self._add_team(org.name, team_name)
            case TeamRemoved(team_name=team_name):
                await _ignore_not_found(self._client.delete_team(org.name, team_name))
            case TeamMaintainerAdded(team_name=team_name, user_name=user_name):
                await self._client.set_team_membership(
                    org.name, team_name, user_name, role="maintainer"
                )
            case TeamMemberAdded(team_name=team_name, user_name=user_name):
                await self._client.set_team_membership(
                    org.name, team_name, user_name, role="member"
                )
            case TeamMaintainerRemoved(team_name=team_name, user_name=user_name):
                await self._remove_team_user(org.name, team_name, user_name, "maintainer")
            case TeamMemberRemoved(team_name=team_name, user_name=user_name):
                await self._remove_team_user(org.name, team_name, user_name, "member")
            case RepositoryAdded(repo=repo):
                await self._add_repository(org.name, repo)
            case (
                RepositoryTeamAdded(repo_name=repo_name, team_name=team_name, role=role)
                | RepositoryTeamRoleUpdated(
                    repo_name=repo_name, team_name=team_name, role=role
                )
            ):
                await self._client.set_repository_team_permission(
                    org.name, repo_name, team_name, permission=role.api_permission
                )
            case RepositoryTeamRemoved(repo_name=repo_name, team_name=team_name):
                await _ignore_not_found(
                    self._client.remove_repository_team(org.name, repo_name, team_name)
                )
            case RepositoryCollaboratorAdded(
                repo_name=repo_name, user_name=user_name, role=role
            ):
                await self._client.add_repository_collaborator(
                    org.name, repo_name, user_name, permission=role.api_permission
                )
            case RepositoryCollaboratorRemoved(repo_name=repo_name, user_name=user_name):
                await self._remove_collaborator(org.name, repo_name, user_name)
            case RepositoryCollaboratorRoleUpdated(
                repo_name=repo_name, user_name=user_name, role=role
            ):
                await self._update_collaborator_role(org.name, repo_name, user_name, role)
            case RepositoryVisibilityUpdated(repo_name=repo_name, visibility=visibility):
                await self._client.update_repository_visibility(
                    org.name, repo_name, visibility=visibility.value
                )
            case _:
                raise UnsupportedChangeError.for_kind(change.kind)

    async def _add_team(self, org: str, team_name: str) -> None:
        if await self._client.get_team(org, team_name) is not None:
            return
        await self._client.create_team(org, team_name)

    async def _remove_team_user(
        self, org: str, team_name: str, user_name: str, role: str
    ) -> None:
        # A user switching roles gets the new role first; keep them in that case.
        membership = await self._client.get_team_membership(org, team_name, user_name)
        if membership is None:
            return
        if membership.get("role") != role:
            return
        await _ignore_not_found(
            self._client.remove_team_membership(org, team_name, user_name)
        )

    async def _add_repository(self, org: str, repo: Repository) -> None:
        if await self._client.get_repository(org, repo.name) is None:
            await self._client.create_repository(
                org, repo.name, visibility=repo.visibility.value
            )
        for team_name, role in repo.teams.items():
            await self._client.set_repository_team_permission(
                org, repo.name, team_name, permission=role.api_permission
            )
        for user_name, role in repo.collaborators.items():
            await self._client.add_repository_collaborator(
                org, repo.name, user_name, permission=role.api_permission
            )

    async def _find_invitation(
        self, org: str, repo_name: str, user_name: str
    ) -> int | None:
        for invitation in await self._client.list_repository_invitations(org, repo_name):
            invitee = invitation.get("invitee") or {}
            if invitee.get("login") == user_name:
                return int(invitation["id"])
        return None

    async def _remove_collaborator(
        self, org: str, repo_name: str, user_name: str
    ) -> None:
        invitation_id = await self._find_invitation(org, repo_name, user_name)
        if invitation_id is not None:
            await _ignore_not_found(
                self._client.delete_repository_invitation(org, repo_name, invitation_id)
            )
            return
        await _ignore_not_found(
            self._client.remove_repository_collaborator(org, repo_name, user_name)
        )

    async def _update_collaborator_role(
        self, org: str, repo_name: str, user_name: str, role: Role
    ) -> None:
        invitation_id = await self._find_invitation(org, repo_name, user_name)
        if invitation_id is not None:
            await self._client.update_repository_invitation(
                org, repo_name, invitation_id, permissions=role.value
            )
            return
        await self._client.add_repository_collaborator(
            org, repo_name, user_name, permission=role.api_permission
        )
