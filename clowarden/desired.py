"""Desired state: what the configuration repository declares at a ref.

Loading never stops at the first problem. Every validation issue found in
the directory and in each service's resources is collected, and whatever
could still be built is kept so validation runs can show a best-effort
diff next to the issues.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ
from pathlib import Path

from .directory import LegacyDocuments, build_directory
from .directory.legacy import load_people_document, load_yaml_document
from .directory.models import Directory
from .errors import ConfigurationError, StateFetchError
from .logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import OrganizationConfig
    from .services import HandlerRegistry
    from .services.github import GitHubRestClient

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class DesiredState:
    """Declared state of an organization.

    Attributes
    ----------
    directory
        Teams and users, shared by every service.
    service_resources
        Resources declared for each service, keyed by service name.
    issues
        Validation problems. When present, the directory and resources hold
        only the parts that passed validation.

    """

    directory: Directory
    service_resources: cabc.Mapping[str, object] = dataclasses.field(
        default_factory=dict
    )
    issues: tuple[str, ...] = ()

    @property
    def invalid(self) -> bool:
        """Return True when the configuration failed validation."""
        return bool(self.issues)


@typ.runtime_checkable
class ConfigSource(typ.Protocol):
    """Where configuration files are read from."""

    async def read_file(self, org: OrganizationConfig, path: str, ref: str) -> str:
        """Return the text of ``path`` at ``ref``."""
        ...


class GitHubConfigSource:
    """Reads files from the organization's configuration repository."""

    def __init__(self, client: GitHubRestClient) -> None:
        """Store the REST client used for the contents API."""
        self._client = client

    async def read_file(self, org: OrganizationConfig, path: str, ref: str) -> str:
        """Fetch ``path`` from ``org.repository`` at ``ref``."""
        return await self._client.get_file_content(org.name, org.repository, path, ref)


class LocalConfigSource:
    """Reads files from a local checkout; the ref is ignored."""

    def __init__(self, root: Path | str) -> None:
        """Remember the checkout root."""
        self._root = Path(root)

    async def read_file(self, org: OrganizationConfig, path: str, ref: str) -> str:
        """Read ``path`` relative to the checkout root."""
        return await asyncio.to_thread(
            (self._root / path).read_text, encoding="utf-8"
        )


class DesiredStateLoader:
    """Builds :class:`DesiredState` from the legacy configuration files."""

    def __init__(self, registry: HandlerRegistry, source: ConfigSource) -> None:
        """Use ``source`` for files and ``registry`` for service resources."""
        self._registry = registry
        self._source = source

    async def _read(self, org: OrganizationConfig, path: str, ref: str) -> str:
        try:
            return await self._source.read_file(org, path, ref)
        except Exception as exc:
            raise StateFetchError.for_desired(exc) from exc

    async def _documents(
        self, org: OrganizationConfig, ref: str
    ) -> tuple[LegacyDocuments, list[str]]:
        legacy = org.legacy
        issues: list[str] = []
        permissions: dict[str, typ.Any] = {}
        people: list[typ.Any] | None = None

        text = await self._read(org, legacy.sheriff_permissions_path, ref)
        try:
            permissions = load_yaml_document(
                text, source=legacy.sheriff_permissions_path
            )
        except ConfigurationError as exc:
            issues.extend(exc.issues)

        if legacy.cncf_people_path:
            text = await self._read(org, legacy.cncf_people_path, ref)
            try:
                people = load_people_document(text, source=legacy.cncf_people_path)
            except ConfigurationError as exc:
                issues.extend(exc.issues)

        return LegacyDocuments(permissions=permissions, people=people), issues

    async def load(self, org: OrganizationConfig, ref: str) -> DesiredState:
        """Load the desired state of ``org`` at ``ref``.

        Raises
        ------
        StateFetchError
            If a configuration file cannot be read at all.

        """
        if not org.legacy.enabled:
            return DesiredState(
                directory=Directory(),
                issues=("only configuration in legacy format supported",),
            )

        documents, issues = await self._documents(org, ref)
        try:
            directory = build_directory(documents)
        except ConfigurationError as exc:
            issues.extend(exc.issues)
            directory = typ.cast("Directory", exc.partial or Directory())

        resources: dict[str, object] = {}
        for handler in self._registry:
            try:
                resources[handler.name] = handler.parse_resources(documents)
            except ConfigurationError as exc:
                issues.extend(exc.issues)
                resources[handler.name] = exc.partial

        log_debug(
            logger,
            "Loaded desired state for %s at %s: %d teams, %d issues",
            org.name,
            ref,
            len(directory.teams),
            len(issues),
        )
        return DesiredState(
            directory=directory,
            service_resources=resources,
            issues=tuple(issues),
        )
