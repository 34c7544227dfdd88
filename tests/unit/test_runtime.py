"""Unit tests for the clowarden.runtime module."""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

import falcon.asgi
import falcon.testing
import pytest

from clowarden.runtime import RuntimeSettings, _parse_port, create_app, main

if typ.TYPE_CHECKING:
    from pathlib import Path


class TestParsePort:
    """Tests for CLOWARDEN_PORT parsing."""

    def test_valid_port(self) -> None:
        """A port in range is returned as an int."""
        assert _parse_port("8080") == 8080

    @pytest.mark.parametrize("value", ["0", "65536", "http", ""])
    def test_invalid_port_exits(self, value: str) -> None:
        """Out-of-range or non-numeric ports stop the process."""
        with pytest.raises(SystemExit) as excinfo:
            _parse_port(value)

        assert excinfo.value.code == 1


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Listener variables override the defaults; bad worker counts do not."""
    monkeypatch.setenv("CLOWARDEN_HOST", "127.0.0.1")
    monkeypatch.setenv("CLOWARDEN_PORT", "9000")
    monkeypatch.setenv("CLOWARDEN_WORKERS", "many")
    monkeypatch.delenv("CLOWARDEN_LOG_LEVEL", raising=False)

    settings = RuntimeSettings.from_env()

    assert settings == RuntimeSettings(host="127.0.0.1", port=9000)


class TestHealthOnlyMode:
    """Tests for create_app() without a GitHub token."""

    @pytest.fixture
    def client(self, monkeypatch: pytest.MonkeyPatch) -> falcon.testing.TestClient:
        """Create a test client without engine configuration."""
        monkeypatch.delenv("CLOWARDEN_GITHUB_TOKEN", raising=False)
        return falcon.testing.TestClient(create_app())

    def test_health_returns_200(self, client: falcon.testing.TestClient) -> None:
        """GET /health returns HTTP 200."""
        result = client.simulate_get("/health")
        assert result.status_code == HTTPStatus.OK
        assert result.headers.get("content-type", "").startswith("application/json")

    def test_ready_returns_503(self, client: falcon.testing.TestClient) -> None:
        """GET /ready reports the engine is not wired."""
        result = client.simulate_get("/ready")
        assert result.status_code == HTTPStatus.SERVICE_UNAVAILABLE

    def test_reconcile_route_absent(self, client: falcon.testing.TestClient) -> None:
        """Organization endpoints are not registered."""
        result = client.simulate_post("/organizations/acme/reconcile")
        assert result.status_code == HTTPStatus.NOT_FOUND


def test_full_mode_with_token(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """With a token and configuration, the organization endpoints exist."""
    config_path = tmp_path / "clowarden.yaml"
    config_path.write_text(
        "organizations:\n  - name: acme\n    repository: .clowarden\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CLOWARDEN_GITHUB_TOKEN", "test-token")
    monkeypatch.setenv("CLOWARDEN_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("CLOWARDEN_RECONCILE_INTERVAL_S", "0")
    monkeypatch.delenv("CLOWARDEN_DATABASE_URL", raising=False)

    app = create_app()
    client = falcon.testing.TestClient(app)

    assert isinstance(app, falcon.asgi.App)
    assert client.simulate_get("/ready").status_code == HTTPStatus.OK
    result = client.simulate_post("/organizations/ghost/reconcile")
    assert result.status_code == HTTPStatus.NOT_FOUND
    assert result.json["title"] == "Organization not found"


def test_engine_refuses_several_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Organization locks are per process, so the engine runs one worker."""
    monkeypatch.setenv("CLOWARDEN_GITHUB_TOKEN", "test-token")
    monkeypatch.setenv("CLOWARDEN_WORKERS", "2")
    monkeypatch.delenv("CLOWARDEN_PORT", raising=False)
    monkeypatch.setattr(
        "clowarden.runtime.configure_logging", lambda level: (level, False)
    )

    with pytest.raises(SystemExit) as excinfo:
        main()

    assert excinfo.value.code == 1
