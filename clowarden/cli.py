"""Command-line checks of a local configuration checkout.

``validate`` reports every problem in the configuration files. ``diff``
additionally reads the organization from GitHub and lists the changes a
reconciliation would apply. Both need ``CLOWARDEN_GITHUB_TOKEN`` because
some rules depend on the organization's admins and members.
"""

from __future__ import annotations

import argparse
import asyncio
import typing as typ
from pathlib import Path

from clowarden import differ
from clowarden.config import (
    ClowardenConfig,
    LegacyConfig,
    OrganizationConfig,
    load_config,
)
from clowarden.desired import DesiredStateLoader, LocalConfigSource
from clowarden.errors import ConfigurationError, ReconciliationError
from clowarden.factory import build_registry
from clowarden.reconciler import render_changes
from clowarden.services.github import GitHubApiConfig, GitHubRestClient
from clowarden.services.github.errors import GitHubAPIError, GitHubConfigError

if typ.TYPE_CHECKING:
    from clowarden.services import HandlerRegistry
    from clowarden.services.protocol import ServiceState


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clowarden-cli", description=__doc__)
    parser.add_argument(
        "command", choices=("validate", "diff"), help="Check to run"
    )
    parser.add_argument("--org", required=True, help="GitHub organization")
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=Path(),
        help="Local checkout of the configuration repository",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Deployment configuration file declaring the organization",
    )
    parser.add_argument(
        "--permissions-file",
        default="config.yaml",
        help="Sheriff permissions file, relative to the checkout",
    )
    parser.add_argument(
        "--people-file",
        default=None,
        help="CNCF people file, relative to the checkout",
    )
    return parser


def _organization(
    args: argparse.Namespace,
) -> tuple[OrganizationConfig, ClowardenConfig | None]:
    if args.config is not None:
        config = load_config(args.config)
        return config.organization(args.org), config
    org = OrganizationConfig(
        name=args.org,
        repository=args.base_dir.resolve().name,
        legacy=LegacyConfig(
            sheriff_permissions_path=args.permissions_file,
            cncf_people_path=args.people_file,
        ),
    )
    return org, None


async def _project(
    org: OrganizationConfig, registry: HandlerRegistry, base_dir: Path
) -> tuple[dict[str, ServiceState], list[str]]:
    desired = await DesiredStateLoader(registry, LocalConfigSource(base_dir)).load(
        org, org.branch
    )
    issues = list(desired.issues)
    projected: dict[str, ServiceState] = {}
    for handler in registry:
        try:
            projected[handler.name] = await handler.project_desired(org, desired)
        except ConfigurationError as exc:
            issues.extend(exc.issues)
    return projected, issues


async def _run(args: argparse.Namespace) -> int:
    org, config = _organization(args)
    client = GitHubRestClient(GitHubApiConfig.from_env())
    try:
        registry = build_registry(config or ClowardenConfig(organizations=[org]), client)
        projected, issues = await _project(org, registry, args.base_dir)
        if issues:
            print(f"configuration for {org.name} is not valid:")
            for issue in issues:
                print(f"  - {issue}")
            return 1
        if args.command == "validate":
            print(f"configuration for {org.name} is valid")
            return 0

        for handler in registry:
            actual = await handler.fetch_actual_state(org)
            changes = differ.compute(handler, projected[handler.name], actual)
            print(f"## {handler.name}: {len(changes)} changes")
            if changes:
                print(render_changes(changes))
        return 0
    finally:
        await client.aclose()


def main(argv: list[str] | None = None) -> int:
    """Validate or diff a local configuration checkout.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 on success, 1 when the configuration is invalid, 2 when
        the command could not run.

    """
    args = _build_parser().parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except (ReconciliationError, GitHubAPIError, GitHubConfigError) as exc:
        print(f"error: {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
