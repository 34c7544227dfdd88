"""Behavioural coverage for the CLOWarden runtime service."""

from __future__ import annotations

import typing as typ

import falcon.testing
import pytest
from pytest_bdd import given, parsers, scenario, then, when

if typ.TYPE_CHECKING:
    from falcon.testing.client import Result


class RuntimeContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    client: falcon.testing.TestClient
    response: Result


@scenario("../runtime.feature", "Health endpoint returns ok status")
def test_health_endpoint_returns_ok() -> None:
    """Wrap the pytest-bdd scenario for the health endpoint."""


@scenario("../runtime.feature", "Ready endpoint reports a health-only app as starting")
def test_ready_endpoint_reports_starting() -> None:
    """Wrap the pytest-bdd scenario for the ready endpoint."""


@pytest.fixture
def runtime_context() -> RuntimeContext:
    """Provide scenario state."""
    return {}


@given("a CLOWarden runtime app without a GitHub token")
def given_health_only_app(
    runtime_context: RuntimeContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Create the runtime app in health-only mode."""
    from clowarden.runtime import create_app

    monkeypatch.delenv("CLOWARDEN_GITHUB_TOKEN", raising=False)
    runtime_context["client"] = falcon.testing.TestClient(create_app())


@when(parsers.parse("I request GET {path}"))
def when_request_get(runtime_context: RuntimeContext, path: str) -> None:
    """Issue a GET request to the given path."""
    runtime_context["response"] = runtime_context["client"].simulate_get(path)


@then(parsers.parse("the response status is {status:d}"))
def then_response_status(runtime_context: RuntimeContext, status: int) -> None:
    """Assert the HTTP response status code."""
    response = runtime_context["response"]
    assert response.status_code == status, (
        f"expected status {status}, got {response.status_code}"
    )


@then(parsers.parse('the response body is {{"status": "{expected_status}"}}'))
def then_response_body_status(
    runtime_context: RuntimeContext, expected_status: str
) -> None:
    """Assert the response JSON body carries the expected status."""
    response = runtime_context["response"]
    assert response.json == {"status": expected_status}, (
        f"expected {{'status': '{expected_status}'}}, got {response.json}"
    )
