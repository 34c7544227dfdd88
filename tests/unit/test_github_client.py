"""Unit tests for the GitHub REST client."""

from __future__ import annotations

import secrets
import typing as typ

import httpx
import pytest

from clowarden.services.github import (
    ErrorCategory,
    GitHubAPIError,
    GitHubApiConfig,
    GitHubConfigError,
    GitHubRestClient,
    categorize_error,
)
from tests.helpers.github_api import API_URL, FakeGitHub

_TOKEN = secrets.token_hex(8)

type Reply = httpx.Response | Exception


class _Scripted:
    """Transport answering requests from a fixed script."""

    def __init__(self, replies: list[Reply]) -> None:
        self.replies = list(replies)
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _make_client(
    replies: list[Reply], *, delays: list[float] | None = None, **config: typ.Any
) -> tuple[GitHubRestClient, _Scripted]:
    transport = _Scripted(replies)
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(transport), base_url=API_URL
    )

    async def _sleep(delay: float) -> None:
        if delays is not None:
            delays.append(delay)

    client = GitHubRestClient(
        GitHubApiConfig(token=_TOKEN, api_url=API_URL, **config),
        http_client=http_client,
        sleep=_sleep,
    )
    return client, transport


def test_empty_token_is_rejected() -> None:
    """A blank token never reaches the network."""
    with pytest.raises(GitHubConfigError):
        GitHubRestClient(GitHubApiConfig(token="  "))


def test_config_from_env_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    """The token variable is mandatory."""
    monkeypatch.delenv("CLOWARDEN_GITHUB_TOKEN", raising=False)

    with pytest.raises(GitHubConfigError):
        GitHubApiConfig.from_env()


def test_config_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Optional variables override the defaults."""
    monkeypatch.setenv("CLOWARDEN_GITHUB_TOKEN", _TOKEN)
    monkeypatch.setenv("CLOWARDEN_GITHUB_API_URL", API_URL)
    monkeypatch.setenv("CLOWARDEN_GITHUB_MAX_RETRIES", "5")
    monkeypatch.setenv("CLOWARDEN_GITHUB_CACHE_TTL_S", "0")

    config = GitHubApiConfig.from_env()

    assert config.api_url == API_URL
    assert config.max_retries == 5
    assert config.cache_ttl_s == 0


@pytest.mark.asyncio
async def test_transient_errors_are_retried_with_backoff() -> None:
    """Server errors and network failures are retried, doubling the delay."""
    delays: list[float] = []
    client, transport = _make_client(
        [
            httpx.Response(502),
            httpx.ConnectError("reset"),
            httpx.Response(200, json={"slug": "core"}),
        ],
        delays=delays,
        retry_backoff_s=0.5,
    )

    team = await client.get_team("acme", "core")

    assert team == {"slug": "core"}
    assert len(transport.calls) == 3
    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    """The last error is raised once retries run out."""
    client, transport = _make_client(
        [httpx.Response(503)] * 3, delays=[], max_retries=2
    )

    with pytest.raises(GitHubAPIError) as excinfo:
        await client.list_teams("acme")

    assert excinfo.value.status_code == 503
    assert len(transport.calls) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    """A validation error is raised on the first attempt."""
    client, transport = _make_client([httpx.Response(422)], delays=[])

    with pytest.raises(GitHubAPIError) as excinfo:
        await client.create_team("acme", "core")

    assert excinfo.value.status_code == 422
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_exhausted_rate_limit_is_reported() -> None:
    """A 403 with no remaining quota is categorised as rate limited."""
    client, _ = _make_client(
        [httpx.Response(403, headers={"x-ratelimit-remaining": "0"})],
        max_retries=0,
    )

    with pytest.raises(GitHubAPIError) as excinfo:
        await client.list_teams("acme")

    assert excinfo.value.rate_limited
    assert categorize_error(excinfo.value) is ErrorCategory.RATE_LIMITED


@pytest.mark.asyncio
async def test_missing_object_is_none() -> None:
    """A 404 on a single-object read gives ``None``."""
    client, _ = _make_client([httpx.Response(404)])

    assert await client.get_repository("acme", "missing") is None


@pytest.mark.asyncio
async def test_lists_follow_pages() -> None:
    """Pages are requested until a short page arrives."""
    full_page = [{"login": f"user{i}"} for i in range(100)]
    client, transport = _make_client(
        [
            httpx.Response(200, json=full_page),
            httpx.Response(200, json=[{"login": "last"}]),
        ]
    )

    members = await client.list_org_members("acme")

    assert len(members) == 101
    assert [call.url.params["page"] for call in transport.calls] == ["1", "2"]
    assert transport.calls[0].url.params["per_page"] == "100"


@pytest.mark.asyncio
async def test_reads_are_cached_until_a_write() -> None:
    """Repeated reads hit the cache; any write clears it."""
    client, transport = _make_client(
        [
            httpx.Response(200, json=[{"slug": "core"}]),
            httpx.Response(201, json={"slug": "docs"}),
            httpx.Response(200, json=[{"slug": "core"}, {"slug": "docs"}]),
        ]
    )

    first = await client.list_teams("acme")
    second = await client.list_teams("acme")
    await client.create_team("acme", "docs")
    third = await client.list_teams("acme")

    assert first == second == [{"slug": "core"}]
    assert len(third) == 2
    assert len(transport.calls) == 3


@pytest.mark.asyncio
async def test_cache_can_be_disabled() -> None:
    """A zero TTL sends every read."""
    client, transport = _make_client(
        [httpx.Response(200, json=[]), httpx.Response(200, json=[])], cache_ttl_s=0
    )

    await client.list_teams("acme")
    await client.list_teams("acme")

    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_file_content_is_read_raw_at_ref() -> None:
    """Configuration files are fetched raw from the requested ref."""
    api = FakeGitHub()
    api.files["feature"] = {"config.yaml": "teams: []\n"}
    client = api.client()

    content = await client.get_file_content(
        "acme", ".clowarden", "/config.yaml", "feature"
    )

    assert content == "teams: []\n"
    request = api.requests[-1]
    assert request.url.params["ref"] == "feature"
    assert request.headers["accept"] == "application/vnd.github.raw+json"


@pytest.mark.asyncio
async def test_unexpected_list_shape_is_an_error() -> None:
    """A list endpoint answering with an object is rejected."""
    client, _ = _make_client([httpx.Response(200, json={"message": "odd"})])

    with pytest.raises(GitHubAPIError, match="expected a list"):
        await client.list_repositories("acme")
