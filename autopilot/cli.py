"""Autopilot CLI - command-line interface for the Autopilot API."""

from pathlib import Path

import httpx
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from autopilot.services.api_client import ApiClientService

# Load .env file from project root (parent of autopilot/ directory)
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

app = typer.Typer(help="Autopilot CLI")
cycle_app = typer.Typer(help="Agent cycle commands")
task_app = typer.Typer(help="Task commands")
finding_app = typer.Typer(help="Finding commands")
report_app = typer.Typer(help="Executive report commands")
app.add_typer(cycle_app, name="cycle")
app.add_typer(task_app, name="task")
app.add_typer(finding_app, name="finding")
app.add_typer(report_app, name="report")

console = Console()

LEVEL_STYLES = {"info": "white", "warning": "yellow", "error": "red"}


def _fail(error: httpx.HTTPError) -> None:
    if isinstance(error, httpx.HTTPStatusError):
        detail = error.response.text
        console.print(f"[red]✗[/red] API returned {error.response.status_code}: {detail}")
    else:
        console.print(f"[red]✗[/red] Could not reach the API: {error}")
    raise typer.Exit(1) from error


@cycle_app.command("run")
def run_cycle():
    """Run one agent cycle now."""
    try:
        data = ApiClientService.run_cycle()
    except httpx.HTTPError as e:
        _fail(e)

    summary = data["summary"]
    mark = "[green]✓[/green]" if data["success"] else "[red]✗[/red]"
    console.print(f"{mark} Cycle {summary['cycle_id']} {summary['status']}")
    console.print(f"  Reclaimed: {summary['tasks_reclaimed']}")
    console.print(
        f"  Findings: {summary['findings_created']} new, "
        f"{summary['findings_suppressed']} suppressed, "
        f"{summary['findings_unmapped']} unmapped"
    )
    console.print(f"  Tasks created: {summary['tasks_created']}")
    console.print(
        f"  Executed: {summary['tasks_executed']} "
        f"({summary['tasks_completed']} completed, {summary['tasks_retried']} retried, "
        f"{summary['tasks_failed']} failed)"
    )
    if summary.get("report_id"):
        console.print(f"  Report: [cyan]{summary['report_id']}[/cyan]")
    for phase, error in (summary.get("phase_errors") or {}).items():
        console.print(f"  [yellow]⚠[/yellow] {phase}: {error}")
    if summary.get("error"):
        console.print(f"  [red]{summary['error']}[/red]")
        raise typer.Exit(1)


@task_app.command("list")
def list_tasks(
    status: str = typer.Option(None, "--status", "-s", help="Filter by status"),
    task_type: str = typer.Option(None, "--type", "-t", help="Filter by task type"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of tasks to show"),
):
    """List recent tasks."""
    try:
        data = ApiClientService.list_tasks(status=status, type=task_type, limit=limit)
    except httpx.HTTPError as e:
        _fail(e)

    tasks = data["tasks"]
    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(title=f"Tasks (showing {len(tasks)} of {data['total']})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Pri", justify="right")
    table.add_column("Type")
    table.add_column("Status", style="magenta")
    table.add_column("Attempts", justify="right")
    table.add_column("Title", style="white")

    for task in tasks:
        title = task["title"][:50] + "..." if len(task["title"]) > 50 else task["title"]
        table.add_row(
            task["id"][:8],
            str(task["priority"]),
            task["type"],
            task["status"],
            f"{task['attempts']}/{task['max_attempts']}",
            title,
        )

    console.print(table)


@task_app.command("get")
def get_task(task_id: str = typer.Argument(..., help="Task ID")):
    """Get task details."""
    try:
        task = ApiClientService.get_task(task_id)
    except httpx.HTTPError as e:
        _fail(e)

    console.print(f"[bold]Task {task['id']}[/bold]")
    console.print(f"  Type: {task['type']} ({task['category']})")
    console.print(f"  Priority: {task['priority']}")
    console.print(f"  Status: {task['status']} ({task['progress']}%)")
    console.print(f"  Attempts: {task['attempts']}/{task['max_attempts']}")
    console.print(f"  Created: {task['created_at']}")
    if task.get("completed_at"):
        console.print(f"  Finished: {task['completed_at']}")
    if task.get("related_finding_id"):
        console.print(f"  Finding: {task['related_finding_id']}")

    console.print(f"\n[bold]{task['title']}[/bold]")
    if task.get("description"):
        console.print(task["description"])

    if task.get("error"):
        console.print(f"\n[red]Error:[/red] {task['error']}")

    skipped = (task.get("result") or {}).get("skipped_steps")
    if skipped:
        console.print(f"\n[yellow]Skipped steps:[/yellow] {', '.join(skipped)}")


@task_app.command("create")
def create_task(
    title: str = typer.Argument(..., help="Task title"),
    task_type: str = typer.Option(..., "--type", "-t", help="Task type"),
    category: str = typer.Option(..., "--category", "-c", help="Task category"),
    priority: int = typer.Option(5, "--priority", "-p", min=1, max=10),
    description: str = typer.Option(None, "--description", "-d"),
):
    """Queue a manual task."""
    try:
        task = ApiClientService.create_task(
            type=task_type,
            title=title,
            category=category,
            priority=priority,
            description=description,
        )
    except httpx.HTTPError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Task created: [bold]{task['id']}[/bold]")
    console.print(f"  Status: {task['status']}")


@finding_app.command("list")
def list_findings(
    unconverted: bool = typer.Option(
        False, "--unconverted", help="Only findings still waiting for a task"
    ),
    severity: str = typer.Option(None, "--severity", help="Filter by severity"),
    limit: int = typer.Option(20, "--limit", "-n"),
):
    """List recent findings."""
    try:
        data = ApiClientService.list_findings(
            converted=False if unconverted else None, severity=severity, limit=limit
        )
    except httpx.HTTPError as e:
        _fail(e)

    findings = data["findings"]
    if not findings:
        console.print("[yellow]No findings found[/yellow]")
        return

    table = Table(title=f"Findings (showing {len(findings)} of {data['total']})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Severity", style="magenta")
    table.add_column("Task", style="dim")
    table.add_column("Title", style="white")

    for finding in findings:
        table.add_row(
            finding["id"][:8],
            finding["finding_type"],
            finding["severity"],
            (finding["related_task_id"] or "-")[:8],
            finding["title"][:60],
        )

    console.print(table)


def _print_report(report: dict) -> None:
    console.print(
        Panel(
            report["executive_summary"],
            title=f"{report['report_type']} ({report['summary_source']})",
            subtitle=f"{report['window_start'][:16]} to {report['window_end'][:16]}",
        )
    )
    console.print(
        f"  Completed: {report['tasks_completed']}  Failed: {report['tasks_failed']}  "
        f"Findings: {report['findings_detected']}  Resolved: {report['findings_resolved']}"
    )
    for issue in report.get("critical_issues") or []:
        console.print(f"  [red]![/red] {issue}")


@report_app.command("latest")
def latest_report():
    """Show the most recent executive report."""
    try:
        report = ApiClientService.get_latest_report()
    except httpx.HTTPError as e:
        _fail(e)
    _print_report(report)


@report_app.command("generate")
def generate_report(
    hours: int = typer.Option(None, "--hours", help="Window size in hours"),
):
    """Generate a report for the window ending now."""
    try:
        report = ApiClientService.generate_report(window_hours=hours)
    except httpx.HTTPError as e:
        _fail(e)
    _print_report(report)


@app.command("logs")
def show_logs(
    level: str = typer.Option(None, "--level", "-l", help="info, warning or error"),
    phase: str = typer.Option(None, "--phase", "-p", help="Cycle phase"),
    limit: int = typer.Option(50, "--limit", "-n"),
):
    """Show recent technical log entries."""
    try:
        data = ApiClientService.list_logs(level=level, phase=phase, limit=limit)
    except httpx.HTTPError as e:
        _fail(e)

    logs = data["logs"]
    if not logs:
        console.print("[yellow]No logs found[/yellow]")
        return

    # Oldest first reads naturally in a terminal
    for entry in reversed(logs):
        style = LEVEL_STYLES.get(entry["level"], "white")
        console.print(
            f"[dim]{entry['created_at'][:19]}[/dim] [{style}]{entry['level']:<7}[/{style}] "
            f"[cyan]{entry['phase']:<8}[/cyan] {entry['message']}"
        )


if __name__ == "__main__":
    app()
