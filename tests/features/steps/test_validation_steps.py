"""Behavioural coverage for validating proposed configuration changes."""

from __future__ import annotations

import asyncio
import typing as typ

from pytest_bdd import parsers, scenario, then, when

from clowarden.reconciler import render_changes

if typ.TYPE_CHECKING:
    from tests.features.conftest import EngineContext


@scenario("../validation.feature", "Adding a member is reported as a change")
def test_added_member_is_reported() -> None:
    """Wrap the pytest-bdd scenario for a valid proposal."""


@scenario(
    "../validation.feature", "Problems in the proposed configuration are reported"
)
def test_problems_are_reported() -> None:
    """Wrap the pytest-bdd scenario for an invalid proposal."""


@scenario("../validation.feature", "A broken base configuration needs manual review")
def test_broken_base_needs_review() -> None:
    """Wrap the pytest-bdd scenario for an unusable baseline."""


@when(parsers.parse('branch "{ref}" is validated'))
def when_validated(engine_context: EngineContext, ref: str) -> None:
    """Validate the configuration proposed at ``ref``."""
    api = engine_context["api"]
    reconciler = engine_context["engine"].reconciler
    engine_context["report"] = asyncio.run(reconciler.validate(api.org, ref))


@then("the report is valid")
def then_report_valid(engine_context: EngineContext) -> None:
    """Assert the proposal has no problems."""
    report = engine_context["report"]
    assert not report.invalid, f"unexpected issues: {report.issues} {report.error}"


@then("the report is invalid")
def then_report_invalid(engine_context: EngineContext) -> None:
    """Assert the proposal has problems."""
    assert engine_context["report"].invalid


@then(parsers.parse('the report lists "{line}"'))
def then_report_lists(engine_context: EngineContext, line: str) -> None:
    """Assert a rendered change line is present."""
    rendered = "\n".join(
        render_changes(service.changes)
        for service in engine_context["report"].services
    )
    assert line in rendered.splitlines(), rendered


@then(parsers.parse('the report has an issue mentioning "{text}"'))
def then_report_issue(engine_context: EngineContext, text: str) -> None:
    """Assert one of the issues contains ``text``."""
    issues = engine_context["report"].issues
    assert any(text in issue for issue in issues), issues


@then(parsers.parse('the base configuration status is "{status}"'))
def then_base_status(engine_context: EngineContext, status: str) -> None:
    """Assert how the base configuration was judged."""
    assert engine_context["report"].base_ref_config_status == status


@then("the report needs manual review")
def then_needs_review(engine_context: EngineContext) -> None:
    """Assert the diff baseline was not trusted."""
    assert engine_context["report"].needs_manual_review
