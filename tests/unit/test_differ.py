"""Unit tests for the directory differ and change ordering."""

from __future__ import annotations

from unittest import mock

import pytest

from clowarden import differ
from clowarden.changes import (
    Change,
    ChangeKind,
    TeamAdded,
    TeamMaintainerAdded,
    TeamMemberRemoved,
)
from clowarden.directory import Directory
from clowarden.services import ServiceState
from clowarden.services.github import GitHubHandler, Repository, Role
from clowarden.services.github.changes import RepositoryTeamRemoved
from tests.helpers.fake_handler import FakeHandler, directory, team


@pytest.fixture
def github_handler() -> GitHubHandler:
    """Return a GitHub handler whose client is never called by diffing."""
    return GitHubHandler(mock.MagicMock())


def _kinds(changes: list[Change]) -> list[ChangeKind]:
    return [change.kind for change in changes]


def test_new_team_yields_team_then_maintainer() -> None:
    """A team absent from the live state is created before its maintainer."""
    desired = ServiceState(directory=directory(team("team1", maintainers=["m1"])))
    actual = ServiceState(directory=Directory())

    changes = differ.compute(FakeHandler(), desired, actual)

    assert changes == [
        Change("fake", TeamAdded(team_name="team1")),
        Change("fake", TeamMaintainerAdded(team_name="team1", user_name="m1")),
    ], "expected exactly a team addition followed by its maintainer"


def test_identical_states_yield_no_changes() -> None:
    """Diffing a state against itself is empty."""
    state = ServiceState(
        directory=directory(
            team("a", maintainers=["m1"], members=["u1", "u2"]),
            team("b", maintainers=["m2", "m1"]),
        )
    )

    assert differ.compute(FakeHandler(), state, state) == []


def test_diff_is_deterministic() -> None:
    """The same inputs always give the same list in the same order."""
    desired = ServiceState(
        directory=directory(
            team("zeta", maintainers=["z1"], members=["u3", "u1"]),
            team("alpha", maintainers=["a1"], members=["u2"]),
        )
    )
    actual = ServiceState(
        directory=directory(
            team("alpha", maintainers=["a2"]), team("old", maintainers=["o"])
        )
    )

    first = differ.compute(FakeHandler(), desired, actual)
    second = differ.compute(FakeHandler(), desired, actual)

    assert first == second
    assert [change.details for change in first] == [
        change.details for change in second
    ]


def test_role_move_yields_independent_changes() -> None:
    """A member promoted to maintainer is removed and added separately."""
    desired = ServiceState(directory=directory(team("t", maintainers=["m", "u"])))
    actual = ServiceState(
        directory=directory(team("t", maintainers=["m"], members=["u"]))
    )

    changes = differ.compute(FakeHandler(), desired, actual)

    assert changes == [
        Change("fake", TeamMaintainerAdded(team_name="t", user_name="u")),
        Change("fake", TeamMemberRemoved(team_name="t", user_name="u")),
    ]


def test_additions_precede_removals_and_ties_sort_by_name() -> None:
    """Additions come first; within a kind subjects are ascending."""
    desired = ServiceState(
        directory=directory(team("b", maintainers=["m"]), team("a", maintainers=["m"]))
    )
    actual = ServiceState(
        directory=directory(team("y", maintainers=["m"]), team("x", maintainers=["m"]))
    )

    changes = differ.compute(FakeHandler(), desired, actual)

    assert _kinds(changes) == [
        ChangeKind.TEAM_ADDED,
        ChangeKind.TEAM_ADDED,
        ChangeKind.TEAM_MAINTAINER_ADDED,
        ChangeKind.TEAM_MAINTAINER_ADDED,
        ChangeKind.TEAM_REMOVED,
        ChangeKind.TEAM_REMOVED,
    ]
    assert [change.details.subject()[0] for change in changes] == [
        "a",
        "b",
        "a",
        "b",
        "x",
        "y",
    ]


def test_team_removal_follows_repository_access_removal(
    github_handler: GitHubHandler,
) -> None:
    """Repository access of a removed team is revoked before the team goes."""
    desired = ServiceState(
        directory=Directory(),
        resources={"repo": Repository.build("repo")},
    )
    actual = ServiceState(
        directory=directory(team("team1", maintainers=["m1"])),
        resources={"repo": Repository.build("repo", teams={"team1": Role.WRITE})},
    )

    changes = differ.compute(github_handler, desired, actual)

    assert _kinds(changes) == [
        ChangeKind.REPOSITORY_TEAM_REMOVED,
        ChangeKind.TEAM_REMOVED,
    ]
    assert changes[0].details == RepositoryTeamRemoved(
        repo_name="repo", team_name="team1"
    )


def test_collaborator_upgrade_yields_single_role_update(
    github_handler: GitHubHandler,
) -> None:
    """Raising a collaborator from read to write is one role update."""
    state_dir = directory(team("t", maintainers=["m"]))
    desired = ServiceState(
        directory=state_dir,
        resources={"repo": Repository.build("repo", collaborators={"u": Role.WRITE})},
    )
    actual = ServiceState(
        directory=state_dir,
        resources={"repo": Repository.build("repo", collaborators={"u": Role.READ})},
    )

    changes = differ.compute(github_handler, desired, actual)

    assert _kinds(changes) == [ChangeKind.REPOSITORY_COLLABORATOR_ROLE_UPDATED]
    assert changes[0].extra() == {
        "repo_name": "repo",
        "user_name": "u",
        "role": "write",
    }


def test_directory_additions_precede_resource_additions(
    github_handler: GitHubHandler,
) -> None:
    """A team is created before a repository grants it access."""
    desired = ServiceState(
        directory=directory(team("new", maintainers=["m"])),
        resources={"repo": Repository.build("repo", teams={"new": Role.READ})},
    )
    actual = ServiceState(
        directory=Directory(), resources={"repo": Repository.build("repo")}
    )

    changes = differ.compute(github_handler, desired, actual)

    assert _kinds(changes) == [
        ChangeKind.TEAM_ADDED,
        ChangeKind.TEAM_MAINTAINER_ADDED,
        ChangeKind.REPOSITORY_TEAM_ADDED,
    ]


def test_change_ids_do_not_affect_equality() -> None:
    """Two changes with the same payload compare equal."""
    first = Change("fake", TeamAdded(team_name="t"))
    second = Change("fake", TeamAdded(team_name="t"))

    assert first.id != second.id
    assert first == second
