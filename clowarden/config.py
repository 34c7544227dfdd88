"""Organization and scheduler configuration.

The organizations managed by a deployment are declared in a YAML file::

    organizations:
      - name: cncf
        repository: .clowarden
        branch: main
        legacy:
          enabled: true
          sheriff_permissions_path: config.yaml
          cncf_people_path: people.json
    services:
      github:
        enabled: true

Scheduler timings come from environment variables, following the
``CLOWARDEN_*`` naming used across the runtime.
"""

from __future__ import annotations

import dataclasses as dc
import os
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from clowarden.errors import ConfigurationError, OrganizationNotFoundError

YAML_VERSION = (1, 2)


class LegacyConfig(msgspec.Struct, kw_only=True):
    """Location of the legacy format files in the configuration repository.

    Attributes
    ----------
    enabled : bool
        Whether the legacy format is in use. It is the only format supported.
    sheriff_permissions_path : str
        Path of the Sheriff permissions YAML file.
    cncf_people_path : str, optional
        Path of the CNCF people JSON file.

    """

    enabled: bool = True
    sheriff_permissions_path: str = "config.yaml"
    cncf_people_path: str | None = None


class OrganizationConfig(msgspec.Struct, kw_only=True):
    """Organization managed by CLOWarden.

    Attributes
    ----------
    name : str
        GitHub organization login.
    repository : str
        Repository, inside the organization, holding the configuration.
    branch : str
        Branch whose head is the desired state.
    installation_id : int, optional
        GitHub App installation serving this organization.
    legacy : LegacyConfig
        Legacy configuration file locations.

    """

    name: str
    repository: str
    branch: str = "main"
    installation_id: int | None = None
    legacy: LegacyConfig = msgspec.field(default_factory=LegacyConfig)


class GitHubServiceConfig(msgspec.Struct, kw_only=True):
    """Toggle for the GitHub service handler."""

    enabled: bool = True


class ServicesConfig(msgspec.Struct, kw_only=True):
    """Service handler toggles."""

    github: GitHubServiceConfig = msgspec.field(default_factory=GitHubServiceConfig)


class ClowardenConfig(msgspec.Struct, kw_only=True):
    """Top level deployment configuration."""

    organizations: list[OrganizationConfig] = msgspec.field(default_factory=list)
    services: ServicesConfig = msgspec.field(default_factory=ServicesConfig)

    def organization(self, name: str) -> OrganizationConfig:
        """Return the named organization.

        Raises
        ------
        OrganizationNotFoundError
            If no organization with that name is configured.

        """
        for org in self.organizations:
            if org.name == name:
                return org
        raise OrganizationNotFoundError(name)


def load_config(path: Path | str) -> ClowardenConfig:
    """Load and check the deployment configuration file."""
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    path_obj = Path(path)

    try:
        loaded = yaml.load(path_obj.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise ConfigurationError.single(f"failed to read {path_obj}: {exc}") from exc

    try:
        config = msgspec.convert(loaded or {}, type=ClowardenConfig)
    except msgspec.ValidationError as exc:
        raise ConfigurationError.single(f"schema validation failed: {exc}") from exc

    names = [org.name for org in config.organizations]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(
            [f"organization {name} is configured more than once" for name in duplicates]
        )
    return config


@dc.dataclass(frozen=True, slots=True)
class SchedulerConfig:
    """Timings for periodic reconciliation.

    Attributes
    ----------
    interval_s
        Seconds between two full passes over every organization.
        Default is one hour.
    org_delay_s
        Seconds to wait between organizations within a pass, spreading
        GitHub API usage. Default is 30 seconds.

    """

    interval_s: int = 3600
    org_delay_s: int = 30

    @staticmethod
    def _parse_non_negative_int(env_var: str, default: int) -> int:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < 0:
            msg = f"{env_var} must not be negative, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        """Read ``CLOWARDEN_RECONCILE_INTERVAL_S`` and ``CLOWARDEN_RECONCILE_ORG_DELAY_S``.

        Raises
        ------
        ValueError
            If a variable is set to something other than a non-negative
            integer.

        """
        return cls(
            interval_s=cls._parse_non_negative_int(
                "CLOWARDEN_RECONCILE_INTERVAL_S", 3600
            ),
            org_delay_s=cls._parse_non_negative_int(
                "CLOWARDEN_RECONCILE_ORG_DELAY_S", 30
            ),
        )
