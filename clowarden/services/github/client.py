"""GitHub REST client used by the GitHub service handler.

Reads are cached for a short time, because one reconciliation lists the
same teams and repositories several times. Any write clears the cache so a
state fetched after applying changes reflects them. Transient failures
(network errors, 5xx, rate limits) are retried with exponential backoff;
other errors are raised straight away.
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
import time
import typing as typ
from urllib.parse import quote

import httpx

from clowarden.logging import get_logger, log_warning

from .errors import GitHubAPIError, GitHubConfigError, is_retryable

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

type JSONObject = dict[str, typ.Any]

_HTTP_ERROR_STATUS_THRESHOLD = 400
_PAGE_SIZE = 100


def _parse_env_number[T: (int, float)](env_var: str, default: T, kind: type[T]) -> T:
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = kind(raw)
    except ValueError as exc:
        msg = f"{env_var} must be a number, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 0:
        msg = f"{env_var} must not be negative, got: {value}"
        raise ValueError(msg)
    return value


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubApiConfig:
    """Configuration for the GitHub REST client."""

    token: str
    api_url: str = "https://api.github.com"
    timeout_s: float = 20.0
    max_retries: int = 3
    retry_backoff_s: float = 1.0
    cache_ttl_s: float = 60.0
    user_agent: str = "clowarden/0.1"

    @classmethod
    def from_env(cls) -> GitHubApiConfig:
        """Build configuration from ``CLOWARDEN_GITHUB_*`` variables.

        ``CLOWARDEN_GITHUB_TOKEN`` is required; ``CLOWARDEN_GITHUB_API_URL``,
        ``CLOWARDEN_GITHUB_TIMEOUT_S``, ``CLOWARDEN_GITHUB_MAX_RETRIES`` and
        ``CLOWARDEN_GITHUB_CACHE_TTL_S`` override the defaults.
        """
        token = os.environ.get("CLOWARDEN_GITHUB_TOKEN", "").strip()
        if not token:
            raise GitHubConfigError.missing_token()
        api_url = os.environ.get("CLOWARDEN_GITHUB_API_URL", "").strip()
        return cls(
            token=token,
            api_url=api_url or "https://api.github.com",
            timeout_s=_parse_env_number("CLOWARDEN_GITHUB_TIMEOUT_S", 20.0, float),
            max_retries=_parse_env_number("CLOWARDEN_GITHUB_MAX_RETRIES", 3, int),
            cache_ttl_s=_parse_env_number("CLOWARDEN_GITHUB_CACHE_TTL_S", 60.0, float),
        )


def _segment(value: str) -> str:
    return quote(value, safe="")


class GitHubRestClient:
    """Thin async wrapper over the GitHub REST endpoints CLOWarden needs."""

    def __init__(
        self,
        config: GitHubApiConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: cabc.Callable[[float], cabc.Awaitable[object]] = asyncio.sleep,
        clock: cabc.Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise the client; an injected ``http_client`` is not closed."""
        if not config.token.strip():
            raise GitHubConfigError.empty_token()

        self._config = config
        self._sleep = sleep
        self._clock = clock
        self._cache: dict[
            tuple[str, tuple[tuple[str, str], ...]], tuple[float, object]
        ] = {}
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout_s,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": config.user_agent,
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def clear_cache(self) -> None:
        """Forget every cached read."""
        self._cache.clear()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: cabc.Mapping[str, str] | None = None,
        json: JSONObject | None = None,
        headers: cabc.Mapping[str, str] | None = None,
    ) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method, path, params=params, json=json, headers=headers
                )
            except httpx.TransportError as exc:
                error = GitHubAPIError.network_error(method, path, exc)
            else:
                if response.status_code < _HTTP_ERROR_STATUS_THRESHOLD:
                    return response
                error = GitHubAPIError.http_error(
                    method,
                    path,
                    response.status_code,
                    rate_limited=response.headers.get("x-ratelimit-remaining") == "0",
                )

            if attempt >= self._config.max_retries or not is_retryable(error):
                raise error
            delay = self._config.retry_backoff_s * 2**attempt
            log_warning(
                logger,
                "GitHub request %s %s failed (%s); retry %d/%d in %.1fs",
                method,
                path,
                error,
                attempt + 1,
                self._config.max_retries,
                delay,
            )
            attempt += 1
            await self._sleep(delay)

    async def _write(
        self,
        method: str,
        path: str,
        *,
        json: JSONObject | None = None,
    ) -> None:
        try:
            await self._request(method, path, json=json)
        finally:
            self.clear_cache()

    def _cached(self, key: tuple[str, tuple[tuple[str, str], ...]]) -> object | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._cache[key]
            return None
        return value

    def _store(self, key: tuple[str, tuple[tuple[str, str], ...]], value: object) -> None:
        if self._config.cache_ttl_s > 0:
            self._cache[key] = (self._clock() + self._config.cache_ttl_s, value)

    async def _get_object(self, path: str) -> JSONObject | None:
        """GET a single object; 404 gives ``None``."""
        key = (path, ())
        cached = self._cached(key)
        if cached is not None:
            return typ.cast("JSONObject", cached)
        try:
            response = await self._request("GET", path)
        except GitHubAPIError as exc:
            if exc.is_not_found:
                return None
            raise
        value: JSONObject = response.json()
        self._store(key, value)
        return value

    async def _get_list(
        self,
        path: str,
        params: cabc.Mapping[str, str] | None = None,
    ) -> list[JSONObject]:
        """GET every page of a list endpoint."""
        base_params = dict(params or {})
        key = (path, tuple(sorted(base_params.items())))
        cached = self._cached(key)
        if cached is not None:
            return typ.cast("list[JSONObject]", cached)

        items: list[JSONObject] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                path,
                params={**base_params, "per_page": str(_PAGE_SIZE), "page": str(page)},
            )
            batch = response.json()
            if not isinstance(batch, list):
                msg = f"expected a list from {path}"
                raise GitHubAPIError(msg, status_code=response.status_code)
            items.extend(batch)
            if len(batch) < _PAGE_SIZE:
                break
            page += 1
        self._store(key, items)
        return items

    # Organization

    async def list_org_members(
        self, org: str, *, role: typ.Literal["all", "admin", "member"] = "all"
    ) -> list[JSONObject]:
        """List organization members, optionally filtered by role."""
        return await self._get_list(f"/orgs/{_segment(org)}/members", {"role": role})

    # Teams

    async def list_teams(self, org: str) -> list[JSONObject]:
        """List the organization's teams."""
        return await self._get_list(f"/orgs/{_segment(org)}/teams")

    async def get_team(self, org: str, team_slug: str) -> JSONObject | None:
        """Return a team, or ``None`` when it does not exist."""
        return await self._get_object(
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
        )

    async def list_team_members(
        self, org: str, team_slug: str, *, role: typ.Literal["maintainer", "member"]
    ) -> list[JSONObject]:
        """List active team members holding ``role``."""
        return await self._get_list(
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}/members",
            {"role": role},
        )

    async def list_team_invitations(self, org: str, team_slug: str) -> list[JSONObject]:
        """List pending invitations to a team."""
        return await self._get_list(
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}/invitations"
        )

    async def get_team_membership(
        self, org: str, team_slug: str, user: str
    ) -> JSONObject | None:
        """Return a user's membership (role and state) in a team."""
        return await self._get_object(
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
            f"/memberships/{_segment(user)}"
        )

    async def create_team(
        self, org: str, name: str, *, description: str | None = None
    ) -> None:
        """Create a closed team."""
        body: JSONObject = {"name": name, "privacy": "closed"}
        if description:
            body["description"] = description
        await self._write("POST", f"/orgs/{_segment(org)}/teams", json=body)

    async def delete_team(self, org: str, team_slug: str) -> None:
        """Delete a team."""
        await self._write(
            "DELETE", f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
        )

    async def set_team_membership(
        self,
        org: str,
        team_slug: str,
        user: str,
        *,
        role: typ.Literal["maintainer", "member"],
    ) -> None:
        """Add a user to a team, or change their team role."""
        await self._write(
            "PUT",
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
            f"/memberships/{_segment(user)}",
            json={"role": role},
        )

    async def remove_team_membership(self, org: str, team_slug: str, user: str) -> None:
        """Remove a user from a team."""
        await self._write(
            "DELETE",
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
            f"/memberships/{_segment(user)}",
        )

    # Repositories

    async def list_repositories(self, org: str) -> list[JSONObject]:
        """List every repository in the organization."""
        return await self._get_list(f"/orgs/{_segment(org)}/repos", {"type": "all"})

    async def get_repository(self, org: str, repo: str) -> JSONObject | None:
        """Return a repository, or ``None`` when it does not exist."""
        return await self._get_object(f"/repos/{_segment(org)}/{_segment(repo)}")

    async def create_repository(self, org: str, repo: str, *, visibility: str) -> None:
        """Create an empty repository."""
        await self._write(
            "POST",
            f"/orgs/{_segment(org)}/repos",
            json={"name": repo, "visibility": visibility},
        )

    async def update_repository_visibility(
        self, org: str, repo: str, *, visibility: str
    ) -> None:
        """Change a repository's visibility."""
        await self._write(
            "PATCH",
            f"/repos/{_segment(org)}/{_segment(repo)}",
            json={"visibility": visibility},
        )

    async def list_repository_collaborators(
        self, org: str, repo: str
    ) -> list[JSONObject]:
        """List direct collaborators with their permissions."""
        return await self._get_list(
            f"/repos/{_segment(org)}/{_segment(repo)}/collaborators",
            {"affiliation": "direct"},
        )

    async def add_repository_collaborator(
        self, org: str, repo: str, user: str, *, permission: str
    ) -> None:
        """Invite a collaborator, or change an existing collaborator's role."""
        await self._write(
            "PUT",
            f"/repos/{_segment(org)}/{_segment(repo)}/collaborators/{_segment(user)}",
            json={"permission": permission},
        )

    async def remove_repository_collaborator(self, org: str, repo: str, user: str) -> None:
        """Remove a direct collaborator."""
        await self._write(
            "DELETE",
            f"/repos/{_segment(org)}/{_segment(repo)}/collaborators/{_segment(user)}",
        )

    async def list_repository_invitations(self, org: str, repo: str) -> list[JSONObject]:
        """List pending collaborator invitations."""
        return await self._get_list(
            f"/repos/{_segment(org)}/{_segment(repo)}/invitations"
        )

    async def update_repository_invitation(
        self, org: str, repo: str, invitation_id: int, *, permissions: str
    ) -> None:
        """Change the role offered by a pending invitation."""
        await self._write(
            "PATCH",
            f"/repos/{_segment(org)}/{_segment(repo)}/invitations/{invitation_id}",
            json={"permissions": permissions},
        )

    async def delete_repository_invitation(
        self, org: str, repo: str, invitation_id: int
    ) -> None:
        """Withdraw a pending invitation."""
        await self._write(
            "DELETE",
            f"/repos/{_segment(org)}/{_segment(repo)}/invitations/{invitation_id}",
        )

    async def list_repository_teams(self, org: str, repo: str) -> list[JSONObject]:
        """List teams with access to a repository."""
        return await self._get_list(f"/repos/{_segment(org)}/{_segment(repo)}/teams")

    async def set_repository_team_permission(
        self, org: str, repo: str, team_slug: str, *, permission: str
    ) -> None:
        """Grant a team access to a repository, or change its role."""
        await self._write(
            "PUT",
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
            f"/repos/{_segment(org)}/{_segment(repo)}",
            json={"permission": permission},
        )

    async def remove_repository_team(self, org: str, repo: str, team_slug: str) -> None:
        """Revoke a team's access to a repository."""
        await self._write(
            "DELETE",
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
            f"/repos/{_segment(org)}/{_segment(repo)}",
        )

    # Configuration files

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """Return a file's raw content at ``ref``. Never cached."""
        response = await self._request(
            "GET",
            f"/repos/{_segment(owner)}/{_segment(repo)}/contents/"
            f"{quote(path.lstrip('/'))}",
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        return response.text
