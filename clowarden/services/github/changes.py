"""Repository change payloads produced by the GitHub handler."""

from __future__ import annotations

from clowarden.changes import ChangeDetails, ChangeKind

from .models import Repository, Role, Visibility


class RepositoryAdded(
    ChangeDetails, frozen=True, tag=ChangeKind.REPOSITORY_ADDED.value
):
    """A repository must be created with its teams and collaborators."""

    repo: Repository

    def subject(self) -> tuple[str, ...]:
        """Return the repository name."""
        return (self.repo.name,)

    def keywords(self) -> list[str]:
        """Return repository, team, and collaborator keywords."""
        return [
            "repository",
            "added",
            self.repo.name,
            *self.repo.teams,
            *self.repo.collaborators,
        ]

    def template_format(self) -> str:
        """Describe the repository and the access granted on it."""
        lines = [
            f"- repository **{self.repo.name}** has been *added* "
            f"(visibility: **{self.repo.visibility}**)"
        ]
        if self.repo.teams:
            lines.append("\t- Teams")
            lines.extend(
                f"\t\t- **{team_name}**: *{role}*"
                for team_name, role in self.repo.teams.items()
            )
        if self.repo.collaborators:
            lines.append("\t- Collaborators")
            lines.extend(
                f"\t\t- **{user_name}**: *{role}*"
                for user_name, role in self.repo.collaborators.items()
            )
        return "\n".join(lines)


class _RepositoryTeamChange(ChangeDetails, frozen=True):
    repo_name: str
    team_name: str

    def subject(self) -> tuple[str, ...]:
        return (self.repo_name, self.team_name)


class RepositoryTeamAdded(
    _RepositoryTeamChange, frozen=True, tag=ChangeKind.REPOSITORY_TEAM_ADDED.value
):
    """A team gains access to a repository."""

    role: Role

    def keywords(self) -> list[str]:
        """Return repository team keywords."""
        return ["repository", "team", "added", self.repo_name, self.team_name]

    def template_format(self) -> str:
        """Describe the granted team access."""
        return (
            f"- team **{self.team_name}** has been *added* to repository "
            f"**{self.repo_name}** (role: **{self.role}**)"
        )


class RepositoryTeamRemoved(
    _RepositoryTeamChange, frozen=True, tag=ChangeKind.REPOSITORY_TEAM_REMOVED.value
):
    """A team loses access to a repository."""

    def keywords(self) -> list[str]:
        """Return repository team keywords."""
        return ["repository", "team", "removed", self.repo_name, self.team_name]

    def template_format(self) -> str:
        """Describe the revoked team access."""
        return (
            f"- team **{self.team_name}** has been *removed* from repository "
            f"**{self.repo_name}**"
        )


class RepositoryTeamRoleUpdated(
    _RepositoryTeamChange,
    frozen=True,
    tag=ChangeKind.REPOSITORY_TEAM_ROLE_UPDATED.value,
):
    """A team's role on a repository changes."""

    role: Role

    def keywords(self) -> list[str]:
        """Return repository team keywords."""
        return [
            "repository",
            "team",
            "role",
            "updated",
            self.repo_name,
            self.team_name,
        ]

    def template_format(self) -> str:
        """Describe the new team role."""
        return (
            f"- team **{self.team_name}** role in repository **{self.repo_name}** "
            f"has been *updated* to **{self.role}**"
        )


class _RepositoryCollaboratorChange(ChangeDetails, frozen=True):
    repo_name: str
    user_name: str

    def subject(self) -> tuple[str, ...]:
        return (self.repo_name, self.user_name)


class RepositoryCollaboratorAdded(
    _RepositoryCollaboratorChange,
    frozen=True,
    tag=ChangeKind.REPOSITORY_COLLABORATOR_ADDED.value,
):
    """A user becomes a direct collaborator of a repository."""

    role: Role

    def keywords(self) -> list[str]:
        """Return repository collaborator keywords."""
        return [
            "repository",
            "collaborator",
            "added",
            self.repo_name,
            self.user_name,
        ]

    def template_format(self) -> str:
        """Describe the new collaborator."""
        return (
            f"- user **{self.user_name}** is now a collaborator "
            f"(role: **{self.role}**) of repository **{self.repo_name}**"
        )


class RepositoryCollaboratorRemoved(
    _RepositoryCollaboratorChange,
    frozen=True,
    tag=ChangeKind.REPOSITORY_COLLABORATOR_REMOVED.value,
):
    """A user stops being a direct collaborator of a repository."""

    def keywords(self) -> list[str]:
        """Return repository collaborator keywords."""
        return [
            "repository",
            "collaborator",
            "removed",
            self.repo_name,
            self.user_name,
        ]

    def template_format(self) -> str:
        """Describe the removed collaborator."""
        return (
            f"- user **{self.user_name}** is no longer a collaborator of "
            f"repository **{self.repo_name}**"
        )


class RepositoryCollaboratorRoleUpdated(
    _RepositoryCollaboratorChange,
    frozen=True,
    tag=ChangeKind.REPOSITORY_COLLABORATOR_ROLE_UPDATED.value,
):
    """A collaborator's role on a repository changes."""

    role: Role

    def keywords(self) -> list[str]:
        """Return repository collaborator keywords."""
        return [
            "repository",
            "collaborator",
            "role",
            "updated",
            self.repo_name,
            self.user_name,
        ]

    def template_format(self) -> str:
        """Describe the new collaborator role."""
        return (
            f"- user **{self.user_name}** role in repository **{self.repo_name}** "
            f"has been updated to **{self.role}**"
        )


class RepositoryVisibilityUpdated(
    ChangeDetails, frozen=True, tag=ChangeKind.REPOSITORY_VISIBILITY_UPDATED.value
):
    """A repository's visibility changes."""

    repo_name: str
    visibility: Visibility

    def subject(self) -> tuple[str, ...]:
        """Return the repository name."""
        return (self.repo_name,)

    def keywords(self) -> list[str]:
        """Return repository visibility keywords."""
        return ["repository", "visibility", "updated", self.repo_name]

    def template_format(self) -> str:
        """Describe the new visibility."""
        return (
            f"- repository **{self.repo_name}** visibility has been updated to "
            f"**{self.visibility}**"
        )


__all__ = [
    "RepositoryAdded",
    "RepositoryCollaboratorAdded",
    "RepositoryCollaboratorRemoved",
    "RepositoryCollaboratorRoleUpdated",
    "RepositoryTeamAdded",
    "RepositoryTeamRemoved",
    "RepositoryTeamRoleUpdated",
    "RepositoryVisibilityUpdated",
]
