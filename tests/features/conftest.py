"""Shared steps for the reconciliation and validation features.

Scenarios run the real engine against an in-memory GitHub organization:
configuration files are served per ref from the fake contents API, and
every write lands in the fake's state.
"""

from __future__ import annotations

import typing as typ

import pytest
from pytest_bdd import given, parsers, then

from clowarden.config import ClowardenConfig, OrganizationConfig
from clowarden.factory import Engine, build_engine
from tests.helpers.github_api import FakeGitHub

if typ.TYPE_CHECKING:
    from clowarden.reconciler import ReconciliationRecord, ValidationReport


class EngineContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    api: FakeGitHub
    engine: Engine
    record: ReconciliationRecord
    report: ValidationReport
    writes_before: int


def _names(value: str) -> list[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


def _permissions(team: str, maintainers: list[str], members: list[str]) -> str:
    lines = [
        "teams:",
        f"  - name: {team}",
        f"    maintainers: [{', '.join(maintainers)}]",
    ]
    if members:
        lines.append(f"    members: [{', '.join(members)}]")
    return "\n".join(lines) + "\n"


@pytest.fixture
def engine_context() -> EngineContext:
    """Provide scenario state."""
    return {}


@given(parsers.parse('a GitHub organization "{org}" with members "{members}"'))
def given_organization(engine_context: EngineContext, org: str, members: str) -> None:
    """Create the organization and an engine reconciling it."""
    api = FakeGitHub(org)
    for login in _names(members):
        api.add_member(login)
    config = ClowardenConfig(
        organizations=[OrganizationConfig(name=org, repository=".clowarden")]
    )
    engine_context["api"] = api
    engine_context["engine"] = build_engine(config, api.client())


@given(
    parsers.parse(
        'branch "{ref}" declares team "{team}" with maintainers "{maintainers}" '
        'and members "{members}"'
    )
)
def given_branch_declares_team(
    engine_context: EngineContext, ref: str, team: str, maintainers: str, members: str
) -> None:
    """Write a permissions file declaring one team at ``ref``."""
    engine_context["api"].files.setdefault(ref, {})["config.yaml"] = _permissions(
        team, _names(maintainers), _names(members)
    )


@given(
    parsers.parse(
        'branch "{ref}" declares team "{team}" with only maintainers "{maintainers}"'
    )
)
def given_branch_declares_maintainers(
    engine_context: EngineContext, ref: str, team: str, maintainers: str
) -> None:
    """Write a permissions file declaring a team without members at ``ref``."""
    engine_context["api"].files.setdefault(ref, {})["config.yaml"] = _permissions(
        team, _names(maintainers), []
    )


@given(parsers.parse('branch "{ref}" holds an unparsable permissions file'))
def given_unparsable_file(engine_context: EngineContext, ref: str) -> None:
    """Write a permissions file that is not valid YAML."""
    engine_context["api"].files.setdefault(ref, {})["config.yaml"] = "teams: [\n"


@then("GitHub was not modified")
def then_github_not_modified(engine_context: EngineContext) -> None:
    """Assert no write request reached GitHub."""
    writes = engine_context["api"].writes
    assert writes == [], f"unexpected writes: {writes}"
