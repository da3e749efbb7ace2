"""CLI entry point for access-governance.

Invoked as::

    access-gov [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m access_governance.cli.main

Commands
--------
- check            Evaluate a permission for a principal
- matrix           Show the capability matrix in effect
- audit show       Display recent audit entries
- audit stats      Show aggregate audit statistics
- audit export     Export audit data to JSON, JSONL or CSV
- audit sweep      Apply the retention policy once
- audit anomalies  Run anomaly detection over recent entries
- version          Show version information
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from access_governance.config import ConfigError, ConfigLoader, GovernanceConfig
from access_governance.convenience import AccessGovernor
from access_governance.permissions.permission_loader import PermissionConfigError

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("governance.yaml")

_TIER_STYLES: dict[str, str] = {"low": "green", "medium": "yellow", "high": "red"}


def _load_config(config_path: str) -> GovernanceConfig:
    loader = ConfigLoader()
    cfg_path = Path(config_path)
    try:
        return loader.load(cfg_path) if cfg_path.exists() else loader.defaults()
    except ConfigError as exc:
        err_console.print(f"[red]Invalid config:[/red] {exc}")
        sys.exit(2)


def _governor(config_path: str) -> AccessGovernor:
    config = _load_config(config_path)
    try:
        return AccessGovernor.from_config(config)
    except (PermissionConfigError, FileNotFoundError) as exc:
        err_console.print(f"[red]Could not load permissions:[/red] {exc}")
        sys.exit(2)


def _config_option(func):  # type: ignore[no-untyped-def]
    return click.option(
        "--config",
        "-c",
        "config_path",
        default=str(_DEFAULT_CONFIG),
        show_default=True,
        type=click.Path(),
        help="Path to governance.yaml.",
    )(func)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="access-governance")
def cli() -> None:
    """Access Governance CLI: permission checks, audit trail and anomaly tools."""


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from access_governance import __version__

    console.print(
        Panel(
            f"[bold]access-governance[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Role-based permission evaluation and risk-classified audit logging.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command(name="check")
@click.option(
    "--principal",
    "-p",
    "principal_json",
    required=True,
    help='Principal as JSON, e.g. \'{"user_id": "u1", "roles": ["TeamLeader"], "team_ids": ["t1"]}\'.',
)
@click.option("--resource", "-r", "resource_type", required=True, help="Resource type, e.g. 'project'.")
@click.option("--action", "-a", "action", required=True, help="Permission action, e.g. 'update'.")
@click.option(
    "--context",
    "context_json",
    default=None,
    help='Resource context as JSON, e.g. \'{"enterprise_id": "e1", "team_id": "t1"}\'.',
)
@_config_option
def check_command(
    principal_json: str,
    resource_type: str,
    action: str,
    context_json: str | None,
    config_path: str,
) -> None:
    """Evaluate whether a principal may perform an action on a resource type."""
    from access_governance.permissions.engine import Principal, ResourceContext

    try:
        principal_data: dict[str, object] = json.loads(principal_json)
        context_data: dict[str, object] = json.loads(context_json) if context_json else {}
    except json.JSONDecodeError as exc:
        err_console.print(f"[red]Invalid JSON:[/red] {exc}")
        sys.exit(1)

    try:
        principal = Principal(
            user_id=str(principal_data["user_id"]),
            roles=frozenset(principal_data.get("roles", [])),  # type: ignore[arg-type]
            enterprise_id=principal_data.get("enterprise_id"),  # type: ignore[arg-type]
            department_id=principal_data.get("department_id"),  # type: ignore[arg-type]
            team_ids=frozenset(principal_data.get("team_ids", [])),  # type: ignore[arg-type]
        )
        context = ResourceContext(
            enterprise_id=context_data.get("enterprise_id"),  # type: ignore[arg-type]
            department_id=context_data.get("department_id"),  # type: ignore[arg-type]
            team_id=context_data.get("team_id"),  # type: ignore[arg-type]
            is_owner=bool(context_data.get("is_owner", False)),
        )
    except (KeyError, TypeError) as exc:
        err_console.print(f"[red]Invalid principal or context:[/red] {exc}")
        sys.exit(1)

    governor = _governor(config_path)
    decision = governor.evaluate(principal, resource_type, action, context)

    status_str = "[green]ALLOWED[/green]" if decision.allowed else "[red]DENIED[/red]"
    console.print(Panel(status_str, title="Permission Check Result", border_style="blue"))
    console.print(f"  Reason: [bold]{decision.reason.value}[/bold]")
    if decision.matched_role:
        console.print(f"  Role: [cyan]{decision.matched_role}[/cyan]")

    sys.exit(0 if decision.allowed else 1)


# ---------------------------------------------------------------------------
# matrix
# ---------------------------------------------------------------------------


@cli.command(name="matrix")
@_config_option
def matrix_command(config_path: str) -> None:
    """Show the capability matrix in effect."""
    from access_governance.permissions.capability_matrix import Scope

    governor = _governor(config_path)
    matrix = governor.engine.matrix

    table = Table(title="Capability Matrix", box=box.SIMPLE)
    table.add_column("Role", style="cyan")
    table.add_column("Capabilities")
    table.add_column("Scope bypass", style="magenta")

    for role in matrix.roles:
        caps = sorted(f"{rt.value}:{act.value}" for rt, act in matrix.capabilities(role))
        bypass = [scope.value for scope in Scope if matrix.bypasses(role, scope)]
        table.add_row(role, ", ".join(caps) or "-", ", ".join(bypass) or "-")

    console.print(table)


# ---------------------------------------------------------------------------
# audit group
# ---------------------------------------------------------------------------


@cli.group(name="audit")
def audit_group() -> None:
    """Audit trail commands."""


@audit_group.command(name="show")
@click.option("--last", "-n", default=20, show_default=True, type=int, help="Number of recent entries to show.")
@click.option("--user", "user_id", default=None, help="Only show entries for this user.")
@click.option(
    "--tier",
    type=click.Choice(["low", "medium", "high"]),
    default=None,
    help="Only show entries of this risk tier.",
)
@_config_option
def audit_show_command(last: int, user_id: str | None, tier: str | None, config_path: str) -> None:
    """Show recent audit log entries."""
    from access_governance.audit.search import AuditFilter

    governor = _governor(config_path)
    page = governor.query(AuditFilter(user_id=user_id, risk_tier=tier), page=1, page_size=max(last, 1))

    if not page.entries:
        console.print("[yellow]No audit entries found.[/yellow]")
        return

    table = Table(title=f"Last {last} Audit Entries", box=box.SIMPLE)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("User", style="cyan")
    table.add_column("Action", style="magenta")
    table.add_column("Resource")
    table.add_column("Result")
    table.add_column("Risk")

    for entry in page.entries:
        ts = entry.timestamp.isoformat()[:19].replace("T", " ")
        colour = _TIER_STYLES[entry.risk_tier.value]
        table.add_row(
            str(entry.entry_id),
            ts,
            entry.user_id,
            entry.action,
            f"{entry.resource_type}/{entry.resource_id}",
            entry.result.value,
            f"[{colour}]{entry.risk_tier.value}[/{colour}]",
        )

    console.print(table)
    console.print(f"  Matching audit records: [cyan]{page.total}[/cyan]")


@audit_group.command(name="stats")
@click.option("--top", "top_n", default=None, type=int, help="Length of the top actions / users lists.")
@_config_option
def audit_stats_command(top_n: int | None, config_path: str) -> None:
    """Show aggregate audit statistics."""
    governor = _governor(config_path)
    stats = governor.stats(top_n=top_n)

    table = Table(title="Audit Statistics", box=box.SIMPLE)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("Total entries", str(stats.total))
    table.add_row("Successes", str(stats.success_count))
    table.add_row("Failures", str(stats.failure_count))
    for tier, count in stats.risk_tier_counts.items():
        colour = _TIER_STYLES.get(tier, "white")
        table.add_row(f"Risk: [{colour}]{tier}[/{colour}]", str(count))
    console.print(table)

    if stats.top_actions:
        actions = Table(title="Top Actions", box=box.SIMPLE)
        actions.add_column("Action", style="magenta")
        actions.add_column("Count", justify="right")
        for action, count in stats.top_actions:
            actions.add_row(action, str(count))
        console.print(actions)

    if stats.top_users:
        users = Table(title="Top Users", box=box.SIMPLE)
        users.add_column("User", style="cyan")
        users.add_column("Count", justify="right")
        for user, count in stats.top_users:
            users.add_row(user, str(count))
        console.print(users)


@audit_group.command(name="export")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["json", "jsonl", "csv"]),
    default="json",
    show_default=True,
    help="Export format.",
)
@click.option("--output", "-o", "output_file", required=True, type=click.Path(), help="Output file path.")
@_config_option
def audit_export_command(output_format: str, output_file: str, config_path: str) -> None:
    """Export audit data to JSON, JSONL or CSV."""
    governor = _governor(config_path)
    out_path = Path(output_file)
    count = governor.exporter.export_to_file(out_path, fmt=output_format)
    console.print(f"[green]Exported[/green] {count} records to [bold]{out_path}[/bold] ({output_format.upper()}).")


@audit_group.command(name="sweep")
@_config_option
def audit_sweep_command(config_path: str) -> None:
    """Delete entries older than their tier's retention window."""
    from access_governance.audit.models import RiskTier

    governor = _governor(config_path)
    result = governor.sweep()

    table = Table(title="Retention Sweep", box=box.SIMPLE)
    table.add_column("Tier", style="cyan")
    table.add_column("Retention (days)", justify="right")
    table.add_column("Deleted", justify="right", style="bold")
    policy = governor.sweeper.policy
    for tier, deleted in result.deleted.items():
        table.add_row(tier, str(policy.days(RiskTier(tier))), str(deleted))
    console.print(table)
    console.print(f"  Total deleted: [cyan]{result.total}[/cyan]")


@audit_group.command(name="anomalies")
@click.option(
    "--window",
    "window_limit",
    default=None,
    type=int,
    help="Number of most recent entries to analyse (defaults to the configured window).",
)
@_config_option
def audit_anomalies_command(window_limit: int | None, config_path: str) -> None:
    """Run anomaly detection over the most recent audit entries."""
    governor = _governor(config_path)
    if window_limit is not None:
        window = governor.search.recent_window(limit=window_limit)
        reports = governor.detect(window)
    else:
        reports = governor.detect()

    if not reports:
        console.print("[green]No anomalies detected.[/green]")
        return

    table = Table(title="Detected Anomalies", box=box.SIMPLE)
    table.add_column("Type", style="cyan")
    table.add_column("Severity")
    table.add_column("Entries", justify="right")
    table.add_column("Description")
    for report in reports:
        colour = _TIER_STYLES[report.severity.value]
        table.add_row(
            report.anomaly_type.value,
            f"[{colour}]{report.severity.value}[/{colour}]",
            str(len(report.entry_ids)),
            report.description,
        )
    console.print(table)
    sys.exit(1)


if __name__ == "__main__":
    cli()
