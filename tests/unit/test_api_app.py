"""Unit tests for clowarden.api.app application factory.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_app.py

"""

from __future__ import annotations

import typing as typ
from unittest import mock

import falcon
import falcon.asgi
import falcon.testing
import pytest

from clowarden.api.app import AppDependencies, create_app
from clowarden.config import ClowardenConfig, OrganizationConfig
from clowarden.errors import ReconciliationInProgressError
from clowarden.locks import OrganizationLocks
from clowarden.reconciler import PullRequestInfo, Reconciler, TriggerKind
from clowarden.services import HandlerRegistry
from tests.helpers.fake_handler import FakeHandler, FakeLoader, desired, team

if typ.TYPE_CHECKING:
    from clowarden.desired import DesiredState

CONFIG = ClowardenConfig(
    organizations=[OrganizationConfig(name="acme", repository=".clowarden")]
)


def _client(states: dict[str, DesiredState | Exception]) -> falcon.testing.TestClient:
    reconciler = Reconciler(
        CONFIG,
        HandlerRegistry([FakeHandler("github")]),
        FakeLoader(states),  # type: ignore[arg-type]
        OrganizationLocks(),
    )
    return falcon.testing.TestClient(create_app(AppDependencies(reconciler=reconciler)))


@pytest.fixture
def health_client() -> falcon.testing.TestClient:
    """Build a test client for health-only mode."""
    return falcon.testing.TestClient(create_app())


class TestCreateAppHealthOnly:
    """Tests for create_app() without a reconciler."""

    def test_returns_falcon_app(self) -> None:
        """create_app() returns a Falcon ASGI App."""
        assert isinstance(create_app(), falcon.asgi.App), "expected Falcon ASGI App"

    def test_health_is_ok(self, health_client: falcon.testing.TestClient) -> None:
        """Liveness answers even without a reconciler."""
        result = health_client.simulate_get("/health")
        assert result.status == falcon.HTTP_200
        assert result.json == {"status": "ok"}

    def test_ready_reports_starting(
        self, health_client: falcon.testing.TestClient
    ) -> None:
        """Readiness fails until the engine is wired."""
        result = health_client.simulate_get("/ready")
        assert result.status == falcon.HTTP_503, "expected HTTP 503 from /ready"
        assert result.json == {"status": "starting"}

    def test_organization_routes_not_registered(
        self, health_client: falcon.testing.TestClient
    ) -> None:
        """Without a reconciler, organization endpoints are absent."""
        result = health_client.simulate_post("/organizations/acme/reconcile")
        assert result.status == falcon.HTTP_404


class TestReconcileEndpoint:
    """Tests for POST /organizations/{org}/reconcile."""

    def test_applies_declared_state(self) -> None:
        """The run record is returned with the applied changes."""
        client = _client({"main": desired(team("core", maintainers=["alice"]))})

        result = client.simulate_post(
            "/organizations/acme/reconcile",
            json={
                "pull_request": {
                    "number": 42,
                    "merged_by": "bob",
                    "merged_at": "2024-05-01T10:00:00Z",
                }
            },
        )

        assert result.status == falcon.HTTP_200
        body = result.json
        assert body["outcome"] == "success"
        assert body["trigger"] == "pull-request"
        assert body["pr_number"] == 42
        assert body["pr_merged_at"] == "2024-05-01T10:00:00+00:00"
        assert [change["kind"] for change in body["changes"]] == [
            "team-added",
            "team-maintainer-added",
        ]

    def test_ready_once_wired(self) -> None:
        """Readiness succeeds with a reconciler."""
        result = _client({}).simulate_get("/ready")
        assert result.status == falcon.HTTP_200
        assert result.json == {"status": "ready"}

    def test_unknown_organization_is_404(self) -> None:
        """Unconfigured organizations are not found."""
        result = _client({}).simulate_post("/organizations/ghost/reconcile")

        assert result.status == falcon.HTTP_404
        assert result.json["description"] == "organization ghost is not configured"

    @pytest.mark.parametrize(
        "payload",
        [
            {"pull_request": {"number": "42"}},
            {"pull_request": {"number": 0}},
            {"pull_request": {"number": 1, "merged_at": "yesterday"}},
            {"pull_request": {"number": 1, "merged_by": 7}},
            {"pull_request": []},
        ],
    )
    def test_invalid_pull_request_is_400(self, payload: dict[str, object]) -> None:
        """Malformed pull request details are rejected."""
        result = _client({}).simulate_post(
            "/organizations/acme/reconcile", json=payload
        )

        assert result.status == falcon.HTTP_400
        assert result.json["field"].startswith("pull_request")

    def test_busy_organization_is_409(self) -> None:
        """A running reconciliation makes the request retryable later."""
        reconciler = mock.MagicMock(spec=Reconciler)
        reconciler.reconcile = mock.AsyncMock(
            side_effect=ReconciliationInProgressError("acme")
        )
        client = falcon.testing.TestClient(
            create_app(AppDependencies(reconciler=reconciler))
        )

        result = client.simulate_post("/organizations/acme/reconcile")

        assert result.status == falcon.HTTP_409
        assert result.headers["retry-after"] == "30"
        reconciler.reconcile.assert_awaited_once_with(
            "acme", TriggerKind.PULL_REQUEST, pull_request=None, wait=False
        )

    def test_pull_request_is_forwarded(self) -> None:
        """Pull request details reach the reconciler."""
        reconciler = mock.MagicMock(spec=Reconciler)
        reconciler.reconcile = mock.AsyncMock(
            side_effect=ReconciliationInProgressError("acme")
        )
        client = falcon.testing.TestClient(
            create_app(AppDependencies(reconciler=reconciler))
        )

        client.simulate_post(
            "/organizations/acme/reconcile",
            json={"pull_request": {"number": 5, "created_by": "amy"}},
        )

        assert reconciler.reconcile.await_args.kwargs["pull_request"] == (
            PullRequestInfo(number=5, created_by="amy")
        )


class TestValidateEndpoint:
    """Tests for POST /organizations/{org}/validate."""

    def test_reports_changes_against_base(self) -> None:
        """The report lists what the head ref would change."""
        client = _client(
            {
                "main": desired(team("core", maintainers=["alice"])),
                "feature": desired(
                    team("core", maintainers=["alice"], members=["bob"])
                ),
            }
        )

        result = client.simulate_post(
            "/organizations/acme/validate", json={"head_ref": "feature"}
        )

        assert result.status == falcon.HTTP_200
        body = result.json
        assert body["valid"] is True
        assert body["base_ref"] == "main"
        assert body["base_ref_config_status"] == "valid"
        assert body["services"]["github"] == [
            {
                "kind": "team-member-added",
                "extra": {"team_name": "core", "user_name": "bob"},
                "description": "- **bob** is now a member of team **core**",
            }
        ]

    def test_reports_issues(self) -> None:
        """Configuration issues make the report invalid."""
        client = _client(
            {"main": desired(), "feature": desired(issues=["team[x]: bad"])}
        )

        result = client.simulate_post(
            "/organizations/acme/validate", json={"head_ref": "feature"}
        )

        assert result.json["valid"] is False
        assert result.json["issues"] == ["team[x]: bad"]

    @pytest.mark.parametrize("payload", [None, {}, {"head_ref": "  "}, {"head_ref": 3}])
    def test_head_ref_is_required(self, payload: dict[str, object] | None) -> None:
        """A missing or blank head ref is a bad request."""
        result = _client({}).simulate_post(
            "/organizations/acme/validate", json=payload
        )

        assert result.status == falcon.HTTP_400
        assert result.json["field"] == "head_ref"
