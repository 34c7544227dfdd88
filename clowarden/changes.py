"""Change model: the closed set of mutations the engine can apply.

Each change kind is a frozen msgspec struct in a tagged union keyed by the
``kind`` field, so the payload encodes straight into the audit ``extra``
column and consumers dispatch with ``match`` on the payload type. Service
specific kinds (repositories) live next to their handler and subclass
:class:`ChangeDetails` the same way.

Each kind maps to an action and a scope; :func:`change_order_key` turns
them into the Differ's output order.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ
import uuid

import msgspec

if typ.TYPE_CHECKING:
    import datetime as dt


class ChangeKind(enum.StrEnum):
    """Every change kind, in apply order within an action and scope."""

    TEAM_ADDED = "team-added"
    TEAM_MAINTAINER_ADDED = "team-maintainer-added"
    TEAM_MEMBER_ADDED = "team-member-added"
    REPOSITORY_ADDED = "repository-added"
    REPOSITORY_TEAM_ADDED = "repository-team-added"
    REPOSITORY_COLLABORATOR_ADDED = "repository-collaborator-added"
    REPOSITORY_TEAM_ROLE_UPDATED = "repository-team-role-updated"
    REPOSITORY_COLLABORATOR_ROLE_UPDATED = "repository-collaborator-role-updated"
    REPOSITORY_VISIBILITY_UPDATED = "repository-visibility-updated"
    REPOSITORY_COLLABORATOR_REMOVED = "repository-collaborator-removed"
    REPOSITORY_TEAM_REMOVED = "repository-team-removed"
    TEAM_MEMBER_REMOVED = "team-member-removed"
    TEAM_MAINTAINER_REMOVED = "team-maintainer-removed"
    TEAM_REMOVED = "team-removed"


class ChangeAction(enum.StrEnum):
    """Whether a change grants, adjusts, or revokes something."""

    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class ChangeScope(enum.StrEnum):
    """Whether a change targets the directory or a service resource."""

    DIRECTORY = "directory"
    RESOURCE = "resource"


_KIND_ACTIONS: dict[ChangeKind, ChangeAction] = {
    ChangeKind.TEAM_ADDED: ChangeAction.ADD,
    ChangeKind.TEAM_MAINTAINER_ADDED: ChangeAction.ADD,
    ChangeKind.TEAM_MEMBER_ADDED: ChangeAction.ADD,
    ChangeKind.REPOSITORY_ADDED: ChangeAction.ADD,
    ChangeKind.REPOSITORY_TEAM_ADDED: ChangeAction.ADD,
    ChangeKind.REPOSITORY_COLLABORATOR_ADDED: ChangeAction.ADD,
    ChangeKind.REPOSITORY_TEAM_ROLE_UPDATED: ChangeAction.UPDATE,
    ChangeKind.REPOSITORY_COLLABORATOR_ROLE_UPDATED: ChangeAction.UPDATE,
    ChangeKind.REPOSITORY_VISIBILITY_UPDATED: ChangeAction.UPDATE,
    ChangeKind.REPOSITORY_COLLABORATOR_REMOVED: ChangeAction.REMOVE,
    ChangeKind.REPOSITORY_TEAM_REMOVED: ChangeAction.REMOVE,
    ChangeKind.TEAM_MEMBER_REMOVED: ChangeAction.REMOVE,
    ChangeKind.TEAM_MAINTAINER_REMOVED: ChangeAction.REMOVE,
    ChangeKind.TEAM_REMOVED: ChangeAction.REMOVE,
}


def kind_action(kind: ChangeKind) -> ChangeAction:
    """Return whether ``kind`` adds, updates, or removes access."""
    return _KIND_ACTIONS[kind]


def kind_scope(kind: ChangeKind) -> ChangeScope:
    """Return whether ``kind`` targets the directory or a resource."""
    if kind.startswith("team-"):
        return ChangeScope.DIRECTORY
    return ChangeScope.RESOURCE


_KIND_POSITION = {kind: position for position, kind in enumerate(ChangeKind)}
_ACTION_RANK = {ChangeAction.ADD: 0, ChangeAction.UPDATE: 1, ChangeAction.REMOVE: 2}


class ChangeDetails(msgspec.Struct, frozen=True, kw_only=True, tag_field="kind"):
    """Base class for change payloads."""

    @property
    def kind(self) -> ChangeKind:
        """Return the change kind encoded as this payload's tag."""
        return ChangeKind(self.__struct_config__.tag)

    def subject(self) -> tuple[str, ...]:
        """Return the names identifying what the change touches."""
        raise NotImplementedError

    def keywords(self) -> list[str]:
        """Return search keywords stored alongside the audit record."""
        raise NotImplementedError

    def template_format(self) -> str:
        """Return a Markdown list item describing the change."""
        raise NotImplementedError

    def extra(self) -> dict[str, typ.Any]:
        """Return the payload fields as JSON-compatible builtins."""
        encoded = msgspec.to_builtins(self)
        encoded.pop("kind", None)
        return encoded


class TeamAdded(ChangeDetails, frozen=True, tag=ChangeKind.TEAM_ADDED.value):
    """A team must be created. Its users follow as separate changes."""

    team_name: str
    display_name: str | None = None

    def subject(self) -> tuple[str, ...]:
        """Return the team name."""
        return (self.team_name,)

    def keywords(self) -> list[str]:
        """Return team keywords."""
        return ["team", "added", self.team_name]

    def template_format(self) -> str:
        """Describe the new team."""
        return f"- team **{self.team_name}** has been *added*"


class TeamRemoved(ChangeDetails, frozen=True, tag=ChangeKind.TEAM_REMOVED.value):
    """A team must be deleted."""

    team_name: str

    def subject(self) -> tuple[str, ...]:
        """Return the team name."""
        return (self.team_name,)

    def keywords(self) -> list[str]:
        """Return team keywords."""
        return ["team", "removed", self.team_name]

    def template_format(self) -> str:
        """Describe the removed team."""
        return f"- team **{self.team_name}** has been *removed*"


class _TeamUserChange(ChangeDetails, frozen=True):
    team_name: str
    user_name: str

    def subject(self) -> tuple[str, ...]:
        return (self.team_name, self.user_name)


class TeamMaintainerAdded(
    _TeamUserChange, frozen=True, tag=ChangeKind.TEAM_MAINTAINER_ADDED.value
):
    """A user becomes maintainer of a team."""

    def keywords(self) -> list[str]:
        """Return maintainer keywords."""
        return ["team", "maintainer", "added", self.team_name, self.user_name]

    def template_format(self) -> str:
        """Describe the new maintainer."""
        return (
            f"- **{self.user_name}** is now a maintainer of team **{self.team_name}**"
        )


class TeamMaintainerRemoved(
    _TeamUserChange, frozen=True, tag=ChangeKind.TEAM_MAINTAINER_REMOVED.value
):
    """A user stops being maintainer of a team."""

    def keywords(self) -> list[str]:
        """Return maintainer keywords."""
        return ["team", "maintainer", "removed", self.team_name, self.user_name]

    def template_format(self) -> str:
        """Describe the removed maintainer."""
        return (
            f"- **{self.user_name}** is no longer a maintainer of team "
            f"**{self.team_name}**"
        )


class TeamMemberAdded(
    _TeamUserChange, frozen=True, tag=ChangeKind.TEAM_MEMBER_ADDED.value
):
    """A user becomes member of a team."""

    def keywords(self) -> list[str]:
        """Return member keywords."""
        return ["team", "member", "added", self.team_name, self.user_name]

    def template_format(self) -> str:
        """Describe the new member."""
        return f"- **{self.user_name}** is now a member of team **{self.team_name}**"


class TeamMemberRemoved(
    _TeamUserChange, frozen=True, tag=ChangeKind.TEAM_MEMBER_REMOVED.value
):
    """A user stops being member of a team."""

    def keywords(self) -> list[str]:
        """Return member keywords."""
        return ["team", "member", "removed", self.team_name, self.user_name]

    def template_format(self) -> str:
        """Describe the removed member."""
        return (
            f"- **{self.user_name}** is no longer a member of team "
            f"**{self.team_name}**"
        )


def _new_change_id() -> str:
    return str(uuid.uuid4())


@dataclasses.dataclass(frozen=True, slots=True)
class Change:
    """One mutation for a service, as computed by the Differ.

    The identifier is excluded from equality so two diffs of the same inputs
    compare equal.
    """

    service: str
    details: ChangeDetails
    id: str = dataclasses.field(default_factory=_new_change_id, compare=False)

    @property
    def kind(self) -> ChangeKind:
        """Return the change kind."""
        return self.details.kind

    def extra(self) -> dict[str, typ.Any]:
        """Return the JSON payload recorded in the audit log."""
        return self.details.extra()

    def keywords(self) -> list[str]:
        """Return the audit search keywords, prefixed with the service."""
        return [self.service, *self.details.keywords()]

    def template_format(self) -> str:
        """Return the Markdown description of the change."""
        return self.details.template_format()


@dataclasses.dataclass(frozen=True, slots=True)
class ChangeOutcome:
    """Result of applying one change."""

    change: Change
    applied_at: dt.datetime
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return True when the change applied without error."""
        return self.error is None


def change_order_key(change: Change) -> tuple[int, int, int, tuple[str, ...]]:
    """Return the sort key that places a change in apply order.

    Additions come first, then updates, then removals. Directory changes
    precede resource changes when adding or updating, and follow them when
    removing, so access granted through a team is revoked on resources
    before the team itself goes. Within a kind, subjects sort ascending.
    """
    kind = change.kind
    action = kind_action(kind)
    if action is ChangeAction.REMOVE:
        scope_rank = 0 if kind_scope(kind) is ChangeScope.RESOURCE else 1
    else:
        scope_rank = 0 if kind_scope(kind) is ChangeScope.DIRECTORY else 1
    return (
        _ACTION_RANK[action],
        scope_rank,
        _KIND_POSITION[kind],
        change.details.subject(),
    )


__all__ = [
    "Change",
    "ChangeAction",
    "ChangeDetails",
    "ChangeKind",
    "ChangeOutcome",
    "ChangeScope",
    "TeamAdded",
    "TeamMaintainerAdded",
    "TeamMaintainerRemoved",
    "TeamMemberAdded",
    "TeamMemberRemoved",
    "TeamRemoved",
    "change_order_key",
    "kind_action",
    "kind_scope",
]
