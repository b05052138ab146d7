"""Command line interface for VulnTrack."""

import asyncio
import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .core import VulnTrackCore
from .core.exceptions import VulnTrackException
from .impact.scoring import CRITICAL_IMPACT_THRESHOLD, HIGH_IMPACT_THRESHOLD
from .models import EvidenceType, VulnStatus
from .workflow import CreateEvidenceRequest, WorkflowTransition, get_available_transitions


console = Console()

STATUS_COLORS = {
    VulnStatus.OPEN: "red",
    VulnStatus.ASSIGNED: "yellow",
    VulnStatus.IN_PROGRESS: "cyan",
    VulnStatus.FIX_SUBMITTED: "blue",
    VulnStatus.VERIFYING: "magenta",
    VulnStatus.FIXED: "green",
    VulnStatus.CLOSED: "white",
    VulnStatus.IGNORED: "dim",
    VulnStatus.FALSE_POSITIVE: "dim",
}


def _status_text(status: VulnStatus) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status.value}[/{color}]"


def _score_text(score: float) -> str:
    if score >= CRITICAL_IMPACT_THRESHOLD:
        color = "red"
    elif score >= HIGH_IMPACT_THRESHOLD:
        color = "yellow"
    else:
        color = "green"
    return f"[{color}]{score:.2f}[/{color}]"


def _format_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _print_json(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2))


class VulnTrackCLI:
    """Renders VulnTrack operations for the terminal."""

    def __init__(self, core: VulnTrackCore):
        self.core = core

    # Workflow commands

    async def transition(self, instance_id: str, to_status: str, user_id: str,
                         from_status: Optional[str], comment: Optional[str]) -> None:
        result = await self.core.workflow_engine.transition_status(
            instance_id, user_id,
            WorkflowTransition(to=to_status, from_status=from_status, comment=comment)
        )
        console.print(
            f"[green]Transitioned {result.instance_id}:[/green] "
            f"{_status_text(result.from_status)} -> {_status_text(result.to_status)}"
        )

    async def bulk(self, instance_ids: List[str], to_status: str, user_id: str,
                   comment: Optional[str], as_json: bool) -> None:
        result = await self.core.workflow_engine.bulk_transition(
            instance_ids, user_id, to_status, comment
        )

        if as_json:
            _print_json(result.to_dict())
            return

        console.print(f"[green]{len(result.successful)} succeeded[/green], "
                      f"[red]{len(result.failed)} failed[/red]")

        if result.failed:
            table = Table(title="Failures")
            table.add_column("Instance", style="cyan", no_wrap=True)
            table.add_column("Reason", style="red")
            for failure in result.failed:
                table.add_row(failure.id, failure.reason)
            console.print(table)

    async def assign(self, instance_id: str, assignee_id: str, assigned_by_id: str) -> None:
        instance = await self.core.workflow_engine.auto_assign(
            instance_id, assignee_id, assigned_by_id
        )
        console.print(f"[green]Assigned {instance.id} to {instance.assignee_id}[/green]")

    async def history(self, instance_id: str) -> None:
        entries = await self.core.workflow_engine.get_workflow_history(instance_id)
        if not entries:
            console.print("[yellow]No history found[/yellow]")
            return

        table = Table(title=f"History of {instance_id}")
        table.add_column("When", style="white")
        table.add_column("From")
        table.add_column("To")
        table.add_column("By", style="cyan")
        table.add_column("Comment", style="white")

        for entry in entries:
            table.add_row(
                _format_time(entry.created_at),
                _status_text(entry.from_status),
                _status_text(entry.to_status),
                entry.changed_by.name if entry.changed_by else entry.changed_by_id,
                entry.comment or "",
            )

        console.print(table)

    async def stats(self, project_id: str, as_json: bool) -> None:
        stats = await self.core.workflow_engine.get_workflow_stats(project_id)

        if as_json:
            _print_json(stats)
            return

        if not stats:
            console.print("[yellow]No vulnerability instances found[/yellow]")
            return

        table = Table(title=f"Workflow status of {project_id}")
        table.add_column("Status")
        table.add_column("Count", justify="right", style="bold")
        for status in VulnStatus:
            if status.value in stats:
                table.add_row(_status_text(status), str(stats[status.value]))
        console.print(table)

    # Impact commands

    async def cve_impact(self, cve_id: str, as_json: bool) -> None:
        impact = await self.core.impact_engine.calculate_cve_impact(cve_id)

        if as_json:
            _print_json(impact.to_dict())
            return

        metrics = impact.metrics
        summary = f"""
[bold]Title:[/bold] {impact.title}
[bold]Severity:[/bold] {impact.severity.value}
[bold]Impact Score:[/bold] {_score_text(impact.total_impact_score)}

[cyan]Projects:[/cyan] {metrics.project_count}
[cyan]Images:[/cyan] {metrics.image_count}
[cyan]Occurrences:[/cyan] {metrics.total_occurrences}
[bold]First Seen:[/bold] {_format_time(metrics.oldest_occurrence)}
[bold]Last Seen:[/bold] {_format_time(metrics.newest_occurrence)}
        """
        console.print(Panel(summary.strip(), title=impact.cve_id))

        for title, entities in (("Impacted Projects", impact.impacted_projects),
                                ("Impacted Images", impact.impacted_images)):
            if not entities:
                continue
            table = Table(title=title)
            table.add_column("Name", style="cyan")
            table.add_column("Occurrences", justify="right")
            table.add_column("Last Seen", style="white")
            for entity in entities:
                table.add_row(entity.name, str(entity.occurrences), _format_time(entity.last_seen))
            console.print(table)

    async def project_impact(self, project_id: str, as_json: bool) -> None:
        impact = await self.core.impact_engine.calculate_project_impact(project_id)

        if as_json:
            _print_json(impact.to_dict())
            return

        summary = impact.summary
        console.print(Panel(
            f"[bold]CVEs:[/bold] {summary.total_cves}\n"
            f"[red]Critical impact:[/red] {summary.critical_impact}\n"
            f"[yellow]High impact:[/yellow] {summary.high_impact}\n"
            f"[bold]Average score:[/bold] {summary.average_impact_score:.2f}",
            title=f"Project {project_id}"
        ))

        if impact.cve_impacts:
            table = Table(title="CVEs by impact")
            table.add_column("CVE", style="cyan", no_wrap=True)
            table.add_column("Severity")
            table.add_column("Projects", justify="right")
            table.add_column("Images", justify="right")
            table.add_column("Score", justify="right")
            for cve in impact.cve_impacts:
                table.add_row(
                    cve.cve_id,
                    cve.severity.value,
                    str(cve.metrics.project_count),
                    str(cve.metrics.image_count),
                    _score_text(cve.total_impact_score),
                )
            console.print(table)

    async def organization_impact(self, organization_id: str, as_json: bool) -> None:
        impact = await self.core.impact_engine.calculate_organization_impact(organization_id)

        if as_json:
            _print_json(impact.to_dict())
            return

        if impact.top_impact_cves:
            table = Table(title="Top impact CVEs")
            table.add_column("CVE", style="cyan", no_wrap=True)
            table.add_column("Severity")
            table.add_column("Score", justify="right")
            for cve in impact.top_impact_cves:
                table.add_row(cve.cve_id, cve.severity.value, _score_text(cve.total_impact_score))
            console.print(table)
        else:
            console.print("[yellow]No CVEs found[/yellow]")

        if impact.project_summaries:
            table = Table(title="Projects")
            table.add_column("Project", style="cyan")
            table.add_column("CVEs", justify="right")
            table.add_column("Critical", justify="right", style="red")
            table.add_column("High", justify="right", style="yellow")
            table.add_column("Average", justify="right")
            for overview in impact.project_summaries:
                summary = overview.summary
                table.add_row(
                    overview.project_name,
                    str(summary.total_cves),
                    str(summary.critical_impact),
                    str(summary.high_impact),
                    f"{summary.average_impact_score:.2f}",
                )
            console.print(table)

    async def store_impact(self, cve_id: str) -> None:
        snapshot = await self.core.impact_engine.store_impact_calculation(cve_id)
        console.print(f"[green]Stored impact for {cve_id}:[/green] "
                      f"{_score_text(snapshot.impact_score)}")

    # Evidence commands

    async def add_evidence(self, request: CreateEvidenceRequest, user_id: str) -> None:
        record = await self.core.evidence_service.create_evidence(user_id, request)
        console.print(f"[green]Recorded evidence {record.id}[/green]")

    async def list_evidence(self, instance_id: str) -> None:
        records = await self.core.evidence_service.get_evidence_for_vulnerability(instance_id)
        if not records:
            console.print("[yellow]No evidence found[/yellow]")
            return

        table = Table(title=f"Evidence for {instance_id}")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Type", style="magenta")
        table.add_column("Description", style="white")
        table.add_column("By", style="cyan")
        table.add_column("When", style="white")
        for record in records:
            table.add_row(
                record.id[:8] + "...",
                record.evidence_type.value,
                record.description or record.url or "",
                record.created_by.name if record.created_by else record.created_by_id,
                _format_time(record.created_at),
            )
        console.print(table)

    async def delete_evidence(self, evidence_id: str, user_id: str) -> None:
        await self.core.evidence_service.delete_evidence(evidence_id, user_id)
        console.print(f"[green]Deleted evidence {evidence_id}[/green]")

    async def evidence_summary(self, project_id: str, as_json: bool) -> None:
        summary = await self.core.evidence_service.get_evidence_summary(project_id)

        if as_json:
            _print_json(summary.to_dict())
            return

        lines = [f"[bold]Total:[/bold] {summary.total}"]
        lines.extend(f"[cyan]{kind}:[/cyan] {count}" for kind, count in sorted(summary.by_type.items()))
        console.print(Panel("\n".join(lines), title=f"Evidence for {project_id}"))

    async def status(self) -> None:
        status = await self.core.get_system_status()

        health = "[green]healthy[/green]" if status['healthy'] else "[red]unhealthy[/red]"
        lines = [
            f"[bold]Version:[/bold] {status['version']}",
            f"[bold]Environment:[/bold] {status['environment']}",
            f"[bold]Database:[/bold] {status['database_path']}",
            f"[bold]Storage:[/bold] {health}",
        ]
        for table_name, count in status.get('storage', {}).items():
            if isinstance(count, int) and not isinstance(count, bool):
                lines.append(f"[cyan]{table_name}:[/cyan] {count}")

        console.print(Panel("\n".join(lines), title="VulnTrack Status"))


def _run(ctx: click.Context, method: str, *args: Any) -> None:
    """Run a VulnTrackCLI coroutine against a freshly opened core."""
    async def runner():
        async with VulnTrackCore(ctx.obj['config_path']) as core:
            await getattr(VulnTrackCLI(core), method)(*args)

    try:
        asyncio.run(runner())
    except VulnTrackException as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        ctx.exit(2)


# Click CLI commands

@click.group()
@click.version_option(__version__, prog_name='VulnTrack')
@click.option('--config', '-c', 'config_path', type=click.Path(),
              help='Path to configuration file (overrides default config)')
@click.option('--log-level', '-l',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                                case_sensitive=False),
              help='Logging level (overrides config)')
@click.pass_context
def cli(ctx, config_path, log_level):
    """VulnTrack - vulnerability remediation workflow and impact scoring."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    if log_level:
        os.environ['VULNTRACK_LOG_LEVEL'] = log_level.upper()


@cli.group()
def workflow():
    """Remediation workflow commands."""
    pass


@workflow.command()
@click.argument('instance_id')
@click.argument('to_status')
@click.option('--user', '-u', 'user_id', required=True, help='Acting user id')
@click.option('--from', 'from_status', help='Status you believe the instance is in')
@click.option('--comment', '-m', help='Comment recorded in the history')
@click.pass_context
def transition(ctx, instance_id, to_status, user_id, from_status, comment):
    """Move an instance to TO_STATUS."""
    _run(ctx, 'transition', instance_id, to_status.upper(), user_id, from_status, comment)


@workflow.command()
@click.argument('to_status')
@click.argument('instance_ids', nargs=-1, required=True)
@click.option('--user', '-u', 'user_id', required=True, help='Acting user id')
@click.option('--comment', '-m', help='Comment recorded on every history entry')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def bulk(ctx, to_status, instance_ids, user_id, comment, as_json):
    """Move every INSTANCE_ID to TO_STATUS, reporting per-item failures."""
    _run(ctx, 'bulk', list(instance_ids), to_status.upper(), user_id, comment, as_json)


@workflow.command()
@click.argument('instance_id')
@click.argument('assignee_id')
@click.option('--by', 'assigned_by_id', required=True, help='User making the assignment')
@click.pass_context
def assign(ctx, instance_id, assignee_id, assigned_by_id):
    """Assign an instance to ASSIGNEE_ID."""
    _run(ctx, 'assign', instance_id, assignee_id, assigned_by_id)


@workflow.command()
@click.argument('instance_id')
@click.pass_context
def history(ctx, instance_id):
    """Show the status history of an instance."""
    _run(ctx, 'history', instance_id)


@workflow.command()
@click.argument('project_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def stats(ctx, project_id, as_json):
    """Count a project's instances per status."""
    _run(ctx, 'stats', project_id, as_json)


@workflow.command()
@click.argument('status')
def transitions(status):
    """List the statuses reachable from STATUS."""
    available = get_available_transitions(status.upper())
    if not available:
        console.print(f"[yellow]No transitions available from {status}[/yellow]")
        return
    for target in available:
        console.print(_status_text(target))


@cli.group()
def impact():
    """Impact scoring commands."""
    pass


@impact.command('cve')
@click.argument('cve_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def impact_cve(ctx, cve_id, as_json):
    """Show the blast radius of a CVE."""
    _run(ctx, 'cve_impact', cve_id, as_json)


@impact.command('project')
@click.argument('project_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def impact_project(ctx, project_id, as_json):
    """Score every CVE found in a project."""
    _run(ctx, 'project_impact', project_id, as_json)


@impact.command('org')
@click.argument('organization_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def impact_org(ctx, organization_id, as_json):
    """Show the worst CVEs and project scores of an organization."""
    _run(ctx, 'organization_impact', organization_id, as_json)


@impact.command('store')
@click.argument('cve_id')
@click.pass_context
def impact_store(ctx, cve_id):
    """Recompute and cache the impact snapshot of a CVE."""
    _run(ctx, 'store_impact', cve_id)


@cli.group()
def evidence():
    """Fix evidence commands."""
    pass


@evidence.command('add')
@click.argument('instance_id')
@click.option('--type', '-t', 'evidence_type', required=True,
              type=click.Choice([t.value for t in EvidenceType], case_sensitive=False),
              help='Evidence type')
@click.option('--user', '-u', 'user_id', required=True, help='Author user id')
@click.option('--url', help='Link to the PR, commit or build')
@click.option('--description', '-d', help='Free-text description')
@click.option('--previous', 'previous_value', help='Value before the fix')
@click.option('--new', 'new_value', help='Value after the fix')
@click.pass_context
def evidence_add(ctx, instance_id, evidence_type, user_id, url, description,
                 previous_value, new_value):
    """Record fix evidence for an instance."""
    request = CreateEvidenceRequest(
        instance_id=instance_id,
        evidence_type=evidence_type.upper(),
        url=url,
        description=description,
        previous_value=previous_value,
        new_value=new_value,
    )
    _run(ctx, 'add_evidence', request, user_id)


@evidence.command('list')
@click.argument('instance_id')
@click.pass_context
def evidence_list(ctx, instance_id):
    """List the evidence of an instance."""
    _run(ctx, 'list_evidence', instance_id)


@evidence.command('delete')
@click.argument('evidence_id')
@click.option('--user', '-u', 'user_id', required=True, help='Author user id')
@click.pass_context
def evidence_delete(ctx, evidence_id, user_id):
    """Delete evidence you authored."""
    _run(ctx, 'delete_evidence', evidence_id, user_id)


@evidence.command('summary')
@click.argument('project_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def evidence_summary(ctx, project_id, as_json):
    """Summarize evidence across a project."""
    _run(ctx, 'evidence_summary', project_id, as_json)


@cli.command()
@click.pass_context
def status(ctx):
    """Show system and storage status."""
    _run(ctx, 'status')


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
