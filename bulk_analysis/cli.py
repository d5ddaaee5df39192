"""Command-line interface for bulk domain analysis."""

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich import box

from .api.client import BulkAnalysisClient
from .config import get_settings
from .models.domain import QualificationStatus
from .models.duplicates import DuplicateResolution
from .services.controller import BulkAnalysisController
from .services.selection import SmartSelection
from .services.view import SortKey, SortOrder, VerificationFilter, WorkflowFilter
from .utils.csv_export import write_csv
from .utils.messages import MessageKind

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

STATUS_COLORS = {
    "high_quality": "green",
    "good_quality": "cyan",
    "marginal_quality": "yellow",
    "disqualified": "red",
    "pending": "white",
}

MESSAGE_STYLES = {
    MessageKind.INFO: "blue",
    MessageKind.PROGRESS: "dim",
    MessageKind.SUCCESS: "green",
    MessageKind.WARNING: "yellow",
    MessageKind.ERROR: "red",
}

SMART_CHOICES = ["pending_dataforseo", "pending_ai", "pending_both"]


def coro(f):
    """Run an async click command with asyncio.run."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


@asynccontextmanager
async def open_controller(ctx: click.Context, echo: bool = True, project_name: Optional[str] = None):
    """Build the API client and controller from settings plus CLI overrides."""
    settings = get_settings()
    client_id = ctx.obj.get("client_id") or settings.client_id
    project_id = ctx.obj.get("project_id") or settings.project_id
    if not client_id or not project_id:
        raise click.UsageError(
            "Client and project are required (--client/--project or "
            "BULK_ANALYSIS_CLIENT_ID/BULK_ANALYSIS_PROJECT_ID)"
        )

    async with BulkAnalysisClient(settings, client_id=client_id) as api:
        controller = BulkAnalysisController(
            api, project_id=project_id, settings=settings, project_name=project_name
        )
        if echo:
            controller.message.subscribe(lambda text: _echo_message(controller, text))
        else:
            # Progress is rendered by the job display; only problems are echoed.
            controller.message.subscribe(lambda text: _echo_problem(controller, text))
        try:
            yield controller
        finally:
            await controller.close()


def _echo_message(controller: BulkAnalysisController, text: Optional[str]):
    if not text:
        return
    style = MESSAGE_STYLES.get(controller.message.kind, "white")
    console.print(f"[{style}]{text}[/{style}]")


def _echo_problem(controller: BulkAnalysisController, text: Optional[str]):
    if controller.message.kind in (MessageKind.ERROR, MessageKind.WARNING):
        _echo_message(controller, text)


@click.group()
@click.option('--debug/--no-debug', default=False, help='Enable debug logging')
@click.option('--client', 'client_id', help='Client id (overrides BULK_ANALYSIS_CLIENT_ID)')
@click.option('--project', 'project_id', help='Project id (overrides BULK_ANALYSIS_PROJECT_ID)')
@click.pass_context
def cli(ctx, debug, client_id, project_id):
    """Bulk domain qualification for link-building projects.

    Review, filter, analyze and qualify a project's candidate domains.
    """
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj["client_id"] = client_id
    ctx.obj["project_id"] = project_id


def _filter_options(f):
    """Shared filter/sort options for listing and exporting."""
    options = [
        click.option('--status', multiple=True,
                     type=click.Choice([s.value for s in QualificationStatus]),
                     help='Only these statuses (repeatable)'),
        click.option('--workflow', default='all',
                     type=click.Choice([w.value for w in WorkflowFilter]), help='Workflow filter'),
        click.option('--verification', default='all',
                     type=click.Choice([v.value for v in VerificationFilter]), help='Verification filter'),
        click.option('--search', default='', help='Substring of the domain name'),
        click.option('--sort', default=SortKey.CREATED_AT.value,
                     type=click.Choice([k.value for k in SortKey]), help='Sort key'),
        click.option('--order', default=SortOrder.DESC.value,
                     type=click.Choice([o.value for o in SortOrder]), help='Sort order'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _apply_filters(controller, status, workflow, verification, search, sort, order):
    view = controller.view
    view.set_status_filter(status)
    view.set_workflow_filter(workflow)
    view.set_verification_filter(verification)
    view.set_search(search)
    view.set_sort(sort, order)


def _domains_table(records, title, recently=None):
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Domain", style="cyan", max_width=40)
    table.add_column("Status", width=16)
    table.add_column("Keywords", justify="right", width=8)
    table.add_column("DataForSEO", width=10)
    table.add_column("Workflow", width=8)
    table.add_column("Checked", width=10)

    for record in records:
        color = STATUS_COLORS.get(record.qualification_status, "white")
        marker = " *" if recently and record.id in recently else ""
        table.add_row(
            record.id,
            record.domain + marker,
            f"[{color}]{record.status_display}[/{color}]",
            str(record.keyword_count),
            "Yes" if record.has_dataforseo_results else "-",
            "Yes" if record.has_workflow else "-",
            record.checked_at.strftime('%Y-%m-%d') if record.checked_at else "-"
        )
    return table


# Domain management commands
@cli.group()
def domains():
    """Manage a project's domains."""
    pass


@domains.command('list')
@_filter_options
@click.option('--limit', default=None, type=int, help='Rows to show (defaults to one page)')
@click.pass_context
@coro
async def list_domains(ctx, status, workflow, verification, search, sort, order, limit):
    """List domains with filters and sorting."""
    async with open_controller(ctx) as controller:
        if not await controller.load_domains():
            return
        _apply_filters(controller, status, workflow, verification, search, sort, order)
        if limit:
            controller.view.display_limit = limit

        records = controller.visible_records()
        if not records:
            console.print("[yellow]No domains found.")
            return

        total = len(controller.filtered_records())
        console.print(_domains_table(records, f"Domains ({len(records)} of {total} shown)"))
        if controller.has_more():
            console.print("[dim]More domains available, raise --limit to see them.")


@domains.command('add')
@click.argument('file_path', type=click.Path(exists=True))
@click.option('--manual-keywords', help='Comma-separated keywords (manual keyword mode)')
@click.option('--target-page', 'target_pages', multiple=True, help='Target page id (repeatable)')
@click.pass_context
@coro
async def add_domains(ctx, file_path, manual_keywords, target_pages):
    """Add domains from a file with one domain per line."""
    text = Path(file_path).read_text(encoding="utf-8")

    async with open_controller(ctx) as controller:
        if manual_keywords:
            controller.set_keyword_source("manual", manual_keywords=manual_keywords)
        else:
            controller.set_keyword_source("target-pages", target_page_ids=target_pages)

        outcome = await controller.add_domains(text)
        if outcome.already_in_project:
            console.print(f"[dim]Skipped {len(outcome.already_in_project)} domains already in this project.")
        if not outcome.awaiting:
            return

        table = Table(title="Domains in other projects", box=box.ROUNDED)
        table.add_column("Domain", style="cyan")
        table.add_column("Project")
        table.add_column("Status")
        table.add_column("Suggested")
        for dup in outcome.awaiting:
            table.add_row(
                dup.domain,
                dup.existing_project_name or dup.existing_project_id or "-",
                dup.qualification_status or "-",
                dup.default_resolution.value
            )
        console.print(table)

        choices = [r.value for r in DuplicateResolution]
        resolutions = {}
        for dup in outcome.awaiting:
            resolutions[dup.domain] = DuplicateResolution(click.prompt(
                f"Action for {dup.domain}",
                type=click.Choice(choices),
                default=dup.default_resolution.value
            ))

        if click.confirm("Submit these resolutions?", default=True):
            await controller.resolve_duplicates(resolutions)
        else:
            controller.cancel_duplicate_resolution()


@domains.command('set-status')
@click.argument('domain_id')
@click.argument('status', type=click.Choice([s.value for s in QualificationStatus]))
@click.option('--notes', help='Notes to save with the status')
@click.option('--manual/--no-manual', default=True, help='Mark as a human decision')
@click.pass_context
@coro
async def set_status(ctx, domain_id, status, notes, manual):
    """Set the qualification status of one domain."""
    async with open_controller(ctx) as controller:
        await controller.load_domains()
        await controller.update_status(domain_id, status, notes=notes, is_manual=manual)


@domains.command('delete')
@click.argument('domain_id')
@click.pass_context
@coro
async def delete_domain(ctx, domain_id):
    """Delete one domain."""
    if not click.confirm('Are you sure you want to delete this domain?'):
        return
    async with open_controller(ctx) as controller:
        await controller.delete_domain(domain_id)


async def _select(controller, ids, smart) -> int:
    """Select explicit ids or a server-side smart preset."""
    if smart:
        return await controller.apply_smart_selection(SmartSelection.from_name(smart))
    controller.selection.set(ids)
    return len(controller.selection)


@domains.command('bulk-status')
@click.argument('status', type=click.Choice([s.value for s in QualificationStatus]))
@click.option('--id', 'ids', multiple=True, required=True, help='Domain id (repeatable)')
@click.pass_context
@coro
async def bulk_status(ctx, status, ids):
    """Set one status on many domains."""
    async with open_controller(ctx) as controller:
        await controller.load_domains()
        controller.selection.set(ids)
        await controller.bulk_update_status(status)


@domains.command('bulk-delete')
@click.option('--id', 'ids', multiple=True, required=True, help='Domain id (repeatable)')
@click.pass_context
@coro
async def bulk_delete(ctx, ids):
    """Delete many domains."""
    if not click.confirm(f'Delete {len(ids)} domains?'):
        return
    async with open_controller(ctx) as controller:
        controller.selection.set(ids)
        await controller.bulk_delete()


@domains.command('move')
@click.argument('target_project_id')
@click.option('--id', 'ids', multiple=True, required=True, help='Domain id (repeatable)')
@click.pass_context
@coro
async def move_domains(ctx, target_project_id, ids):
    """Move domains to another project."""
    async with open_controller(ctx) as controller:
        controller.selection.set(ids)
        await controller.move_selected(target_project_id)


@domains.command('refresh')
@click.option('--target-page', 'target_pages', multiple=True, required=True, help='Target page id (repeatable)')
@click.pass_context
@coro
async def refresh_domains(ctx, target_pages):
    """Re-derive keywords of pending domains from target pages."""
    async with open_controller(ctx) as controller:
        if not await controller.load_domains():
            return
        controller.set_keyword_source("target-pages", target_page_ids=target_pages)
        await controller.refresh_pending_domains()


@domains.command('workflows')
@click.option('--id', 'ids', multiple=True, help='Domain id (repeatable)')
@click.option('--smart', type=click.Choice(SMART_CHOICES), help='Select by server-side preset')
@click.pass_context
@coro
async def create_workflows(ctx, ids, smart):
    """Create a draft workflow for each domain."""
    async with open_controller(ctx) as controller:
        if not await controller.load_domains():
            return
        if not await _select(controller, ids, smart):
            console.print("[yellow]No domains selected.")
            return
        await controller.bulk_create_workflows()


def _clusters_table(clusters):
    table = Table(title="Keyword Clusters", box=box.ROUNDED)
    table.add_column("#", style="dim", width=3)
    table.add_column("Cluster", style="cyan")
    table.add_column("Relevance", width=9)
    table.add_column("Keywords", justify="right", width=8)
    table.add_column("Sample", max_width=50)
    for i, cluster in enumerate(clusters, 1):
        table.add_row(
            str(i),
            cluster.name,
            cluster.relevance,
            str(len(cluster.keywords)),
            ", ".join(cluster.keywords[:5])
        )
    return table


async def _run_job(controller, start):
    """Start a job and render its progress until it ends."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console
    ) as progress:
        task = progress.add_task("Submitting...", total=None)

        def on_message(text):
            job = controller.poller.job
            if text and controller.message.kind == MessageKind.PROGRESS:
                progress.update(
                    task,
                    description=text,
                    completed=job.processed_domains if job else 0,
                    total=(job.total_domains or None) if job else None
                )

        controller.message.subscribe(on_message)
        job = await start()
        await controller.wait_for_job()

    if job is not None and controller.message.kind == MessageKind.SUCCESS:
        _echo_message(controller, controller.message.text)
    return job


@cli.command()
@click.option('--id', 'ids', multiple=True, help='Domain id (repeatable)')
@click.option('--smart', type=click.Choice(SMART_CHOICES), help='Select by server-side preset')
@click.option('--keywords', help='Comma-separated keywords instead of target pages')
@click.option('--target-page', 'target_pages', multiple=True, help='Target page id (repeatable)')
@click.option('--skip-cluster', 'skip', multiple=True, type=int, help='Cluster number to leave out (repeatable)')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@coro
async def analyze(ctx, ids, smart, keywords, target_pages, skip, yes):
    """Run DataForSEO keyword analysis over many domains."""
    async with open_controller(ctx, echo=False) as controller:
        if not await controller.load_domains():
            return
        await controller.load_target_pages()

        if keywords:
            controller.set_keyword_source("manual", manual_keywords=keywords)
        else:
            controller.set_keyword_source("target-pages", target_page_ids=target_pages)

        if not await _select(controller, ids, smart):
            console.print("[yellow]No domains selected.")
            return

        clusters = controller.prepare_keyword_clusters()
        if not clusters:
            return
        for number in skip:
            if 1 <= number <= len(clusters):
                controller.toggle_cluster(number - 1)

        console.print(_clusters_table([c for c in clusters if c.selected]))
        if not yes and not click.confirm(f"Analyze {len(controller.selection)} domains?", default=True):
            return

        job = await _run_job(controller, controller.start_bulk_analysis)
        if job and controller.recently_analyzed:
            refreshed = [r for r in controller.records if r.id in controller.recently_analyzed]
            console.print(_domains_table(refreshed, "Analyzed domains"))


@cli.command()
@click.option('--id', 'ids', multiple=True, help='Domain id (repeatable)')
@click.option('--smart', type=click.Choice(SMART_CHOICES), help='Select by server-side preset')
@click.option('--target-page', 'target_pages', multiple=True, help='Target page id (repeatable)')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@coro
async def qualify(ctx, ids, smart, target_pages, yes):
    """Run AI qualification (with DataForSEO where missing) over many domains."""
    async with open_controller(ctx, echo=False) as controller:
        if not await controller.load_domains():
            return
        if not await _select(controller, ids, smart):
            console.print("[yellow]No domains selected.")
            return
        if not yes and not click.confirm(f"Qualify {len(controller.selection)} domains?", default=True):
            return

        job = await _run_job(controller, lambda: controller.start_qualification(list(target_pages)))
        if job and controller.recently_analyzed:
            refreshed = [r for r in controller.records if r.id in controller.recently_analyzed]
            console.print(_domains_table(refreshed, "Qualified domains"))


@cli.command()
@click.argument('output', type=click.Path())
@_filter_options
@click.option('--selected', multiple=True, help='Export only these domain ids (repeatable)')
@click.option('--project-name', help='Project name used in the default file name')
@click.pass_context
@coro
async def export(ctx, output, status, workflow, verification, search, sort, order, selected, project_name):
    """Export domains to CSV (a directory OUTPUT gets a dated file name)."""
    async with open_controller(ctx, project_name=project_name) as controller:
        if not await controller.load_domains():
            return
        _apply_filters(controller, status, workflow, verification, search, sort, order)

        if selected:
            controller.selection.set(selected)
            exported = controller.export_selected()
        else:
            exported = controller.export_all()
        if exported is None:
            return

        path = write_csv(output, *exported)
        console.print(f"[green]Wrote {path}")


TRIAGE_KEYS = {
    "h": QualificationStatus.HIGH_QUALITY,
    "g": QualificationStatus.GOOD_QUALITY,
    "m": QualificationStatus.MARGINAL_QUALITY,
    "d": QualificationStatus.DISQUALIFIED,
    "p": QualificationStatus.PENDING,
}


def _show_triage_record(flow):
    record = flow.current
    rankings = flow.rankings.get(record.id)
    lines = [
        f"[bold]{record.domain}[/bold]  ({flow.position})",
        f"Status: {record.status_display}",
        f"Keywords: {record.keyword_count}",
        f"Workflow: {'Yes' if record.has_workflow else 'No'}",
        f"Notes: {record.notes or '-'}",
    ]
    if record.ai_qualification_reasoning:
        lines.append(f"\nAI reasoning: {record.ai_qualification_reasoning}")
    if rankings:
        lines.append(
            f"\nRankings: {rankings.total_rankings} "
            f"(avg position {rankings.avg_position:.1f}{', more available' if rankings.has_more else ''})"
        )
        for kw in rankings.keywords[:10]:
            lines.append(f"  #{kw['position']}  {kw['keyword']}  ({kw.get('searchVolume') or '-'}/mo)")
    console.print(Panel.fit("\n".join(lines), title="Triage", border_style="blue"))


@cli.command()
@click.option('--guided', 'guided_id', help='Review only this domain, then return')
@_filter_options
@click.pass_context
@coro
async def triage(ctx, guided_id, status, workflow, verification, search, sort, order):
    """Review domains one at a time."""
    async with open_controller(ctx) as controller:
        if not await controller.load_domains():
            return
        await controller.load_target_pages()
        _apply_filters(controller, status, workflow, verification, search, sort, order)

        returned = []
        flow = controller.open_triage(guided_id, on_return=returned.append)
        if flow is None:
            return

        console.print(
            "[dim]h=high  g=good  m=marginal  d=disqualified  p=pending  "
            "n=next  b=back  a=analyze  o=notes  q=quit"
        )
        while not flow.closed:
            if flow.current.id not in flow.rankings:
                await flow.load_rankings()
            _show_triage_record(flow)
            key = click.prompt("Action", type=click.Choice(list(TRIAGE_KEYS) + list("nbaoq")),
                               show_choices=False)

            if key in TRIAGE_KEYS:
                await flow.qualify(TRIAGE_KEYS[key])
                await flow.wait_for_return()
            elif key == "n" and not flow.next():
                console.print("[yellow]Already at the last domain.")
            elif key == "b" and not flow.previous():
                console.print("[yellow]Already at the first domain.")
            elif key == "a":
                await flow.analyze_current()
            elif key == "o":
                flow.set_notes(click.prompt("Notes", default=flow.notes.get(flow.current.id, "")))
            elif key == "q":
                await flow.close()

        if returned:
            console.print(f"[green]Guided review of {returned[0]} finished.")


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
