"""ServiceHandler protocol: the port every managed platform implements.

The reconciler never knows which platform it is talking to. It asks each
registered handler for its view of the desired state, for the live state,
for the resource-specific part of the diff, and finally to apply changes one
at a time. Directory (team and membership) diffing is done by the core.

The protocol is ``runtime_checkable`` so registries can reject objects that
do not implement it.
"""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    from clowarden.changes import Change
    from clowarden.config import OrganizationConfig
    from clowarden.desired import DesiredState
    from clowarden.directory import Directory, LegacyDocuments


@dataclasses.dataclass(frozen=True, slots=True)
class ServiceState:
    """One service's view of an organization.

    Attributes
    ----------
    directory
        Teams and users as the service sees (or should see) them.
    resources
        Service-specific resources, opaque to the core and only ever read by
        the handler that produced them.

    """

    directory: Directory
    resources: typ.Any = None


@typ.runtime_checkable
class ServiceHandler(typ.Protocol):
    """Adapter between the reconciliation engine and one platform."""

    @property
    def name(self) -> str:
        """Return the unique service name used in registries and audit rows."""
        ...

    def parse_resources(self, documents: LegacyDocuments) -> object:
        """Decode the service resources declared in the configuration.

        Raises
        ------
        ConfigurationError
            With ``partial`` set to the resources that could be decoded.

        """
        ...

    async def project_desired(
        self,
        org: OrganizationConfig,
        desired: DesiredState,
    ) -> ServiceState:
        """Return the desired state adjusted to the service's rules.

        Raises
        ------
        ConfigurationError
            If the declared state breaks a rule only the live service can
            check, such as a maintainer who is not an organization member.

        """
        ...

    async def fetch_actual_state(self, org: OrganizationConfig) -> ServiceState:
        """Read the live state. Must not modify anything on the service."""
        ...

    def diff_resources(
        self,
        desired: ServiceState,
        actual: ServiceState,
    ) -> list[Change]:
        """Return the resource changes turning ``actual`` into ``desired``."""
        ...

    async def apply_change(self, org: OrganizationConfig, change: Change) -> None:
        """Apply exactly one change. Applying it twice must be harmless."""
        ...
