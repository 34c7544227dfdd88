"""Compute the ordered changes that turn an actual state into a desired one.

Everything here is pure: the same desired and actual snapshots always give
the same list in the same order. Directory changes are computed here for
every service; resource changes come from the handler's own diff pass.
"""

from __future__ import annotations

import typing as typ

from .changes import (
    Change,
    TeamAdded,
    TeamMaintainerAdded,
    TeamMaintainerRemoved,
    TeamMemberAdded,
    TeamMemberRemoved,
    TeamRemoved,
    change_order_key,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .directory import Directory, Team
    from .services import ServiceHandler, ServiceState


def _user_changes(
    service: str,
    team_name: str,
    desired_users: cabc.Set[str],
    actual_users: cabc.Set[str],
    *,
    added: type[TeamMaintainerAdded | TeamMemberAdded],
    removed: type[TeamMaintainerRemoved | TeamMemberRemoved],
) -> list[Change]:
    changes = [
        Change(service, added(team_name=team_name, user_name=user_name))
        for user_name in sorted(desired_users - actual_users)
    ]
    changes.extend(
        Change(service, removed(team_name=team_name, user_name=user_name))
        for user_name in sorted(actual_users - desired_users)
    )
    return changes


def _team_changes(service: str, desired: Team, actual: Team | None) -> list[Change]:
    changes: list[Change] = []
    if actual is None:
        changes.append(
            Change(
                service,
                TeamAdded(team_name=desired.name, display_name=desired.display_name),
            )
        )
    actual_maintainers = actual.maintainers if actual is not None else frozenset()
    actual_members = actual.members if actual is not None else frozenset()
    changes.extend(
        _user_changes(
            service,
            desired.name,
            desired.maintainers,
            actual_maintainers,
            added=TeamMaintainerAdded,
            removed=TeamMaintainerRemoved,
        )
    )
    changes.extend(
        _user_changes(
            service,
            desired.name,
            desired.members,
            actual_members,
            added=TeamMemberAdded,
            removed=TeamMemberRemoved,
        )
    )
    return changes


def diff_directory(service: str, desired: Directory, actual: Directory) -> list[Change]:
    """Return team and membership changes, unordered.

    Maintainer and member sets are compared independently: a user moving
    from member to maintainer yields one removal and one addition.
    """
    changes: list[Change] = []
    for name in sorted(desired.teams):
        changes.extend(
            _team_changes(service, desired.teams[name], actual.get_team(name))
        )
    changes.extend(
        Change(service, TeamRemoved(team_name=name))
        for name in sorted(set(actual.teams) - set(desired.teams))
    )
    return changes


def order_changes(changes: cabc.Iterable[Change]) -> list[Change]:
    """Sort changes into apply order (see :func:`change_order_key`)."""
    return sorted(changes, key=change_order_key)


def compute(
    handler: ServiceHandler,
    desired: ServiceState,
    actual: ServiceState,
) -> list[Change]:
    """Return every change needed for ``handler``'s service, in apply order."""
    changes = diff_directory(handler.name, desired.directory, actual.directory)
    changes.extend(handler.diff_resources(desired, actual))
    return order_changes(changes)
