"""GitHub resources managed alongside the directory."""

from __future__ import annotations

import enum
import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class Role(enum.StrEnum):
    """Repository access level, from least to most privileged."""

    READ = "read"
    TRIAGE = "triage"
    WRITE = "write"
    MAINTAIN = "maintain"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        """Return the privilege rank; higher grants more."""
        return _ROLE_ORDER.index(self)

    def outranks(self, other: Role) -> bool:
        """Return True when this role grants more than ``other``."""
        return self.rank > other.rank

    @property
    def api_permission(self) -> str:
        """Return the permission name used by team and collaborator endpoints."""
        return _API_PERMISSIONS[self]

    @classmethod
    def from_api(cls, permission: str | None) -> Role:
        """Parse a REST permission or role name; unknown values mean read."""
        if permission is None:
            return cls.READ
        return _FROM_API.get(permission.lower(), cls.READ)

    @classmethod
    def from_flags(cls, permissions: cabc.Mapping[str, bool] | None) -> Role:
        """Return the highest role granted by a REST ``permissions`` object."""
        if not permissions:
            return cls.READ
        for flag, role in _FLAG_ROLES:
            if permissions.get(flag):
                return role
        return cls.READ


_ROLE_ORDER = (Role.READ, Role.TRIAGE, Role.WRITE, Role.MAINTAIN, Role.ADMIN)
_API_PERMISSIONS = {
    Role.READ: "pull",
    Role.TRIAGE: "triage",
    Role.WRITE: "push",
    Role.MAINTAIN: "maintain",
    Role.ADMIN: "admin",
}
_FROM_API = {
    "pull": Role.READ,
    "read": Role.READ,
    "triage": Role.TRIAGE,
    "push": Role.WRITE,
    "write": Role.WRITE,
    "maintain": Role.MAINTAIN,
    "admin": Role.ADMIN,
}
_FLAG_ROLES = (
    ("admin", Role.ADMIN),
    ("maintain", Role.MAINTAIN),
    ("push", Role.WRITE),
    ("triage", Role.TRIAGE),
    ("pull", Role.READ),
)


class Visibility(enum.StrEnum):
    """Repository visibility."""

    INTERNAL = "internal"
    PRIVATE = "private"
    PUBLIC = "public"

    @classmethod
    def from_api(cls, value: str | None) -> Visibility:
        """Parse the REST ``visibility`` field; unknown values mean public."""
        try:
            return cls(value or cls.PUBLIC)
        except ValueError:
            return cls.PUBLIC


class Repository(msgspec.Struct, frozen=True, kw_only=True):
    """Repository with the access granted on it.

    Attributes
    ----------
    name : str
        Repository name within the organization.
    visibility : Visibility
        Repository visibility, public unless declared otherwise.
    teams : dict[str, Role]
        Team slug to role.
    collaborators : dict[str, Role]
        Direct collaborator login to role.

    """

    name: str
    visibility: Visibility = Visibility.PUBLIC
    teams: dict[str, Role] = msgspec.field(default_factory=dict)
    collaborators: dict[str, Role] = msgspec.field(default_factory=dict)

    @classmethod
    def build(
        cls,
        name: str,
        *,
        visibility: Visibility = Visibility.PUBLIC,
        teams: cabc.Mapping[str, Role] | None = None,
        collaborators: cabc.Mapping[str, Role] | None = None,
    ) -> Repository:
        """Return a repository whose mappings are sorted by key."""
        teams = teams or {}
        collaborators = collaborators or {}
        return cls(
            name=name,
            visibility=visibility,
            teams={key: teams[key] for key in sorted(teams)},
            collaborators={key: collaborators[key] for key in sorted(collaborators)},
        )


type Repositories = dict[str, Repository]
