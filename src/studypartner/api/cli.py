"""Study Partner Command Line Interface.

Operational commands for the AI study-partner backend: the staleness sweep,
inspecting and ending a user's sessions, and trying the answer guard.
"""

from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from studypartner.core.config import get_settings
from studypartner.core.logging import configure_logging
from studypartner.dialogue.intent import classify_intent, guard_directive
from studypartner.sessions.lifecycle import SessionLifecycleManager
from studypartner.sessions.models import SessionStatus
from studypartner.sessions.store import SessionStore

app = typer.Typer(
    name="studypartner",
    help="Study Partner - AI study-partner session tooling",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    SessionStatus.ACTIVE: "green",
    SessionStatus.PAUSED: "yellow",
    SessionStatus.COMPLETED: "dim",
    SessionStatus.EXPIRED: "red",
}


def _get_manager() -> SessionLifecycleManager:
    """Get a lifecycle manager on the configured database."""
    settings = get_settings()
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    return SessionLifecycleManager(SessionStore(settings.db_path))


def _format_timestamp(ts: Optional[datetime]) -> str:
    """Format timestamp for display."""
    if not ts:
        return "-"
    return ts.strftime("%Y-%m-%d %H:%M")


def _format_duration(seconds: Optional[int]) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}m {secs:02d}s"


@app.callback()
def main(
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
):
    """Configure logging before any command runs."""
    configure_logging(quiet=quiet)


@app.command()
def sweep():
    """Expire stale AI partner sessions.

    Meant to run on a schedule (cron, systemd timer). Safe to run from
    several hosts at once: each session is expired by at most one sweep.

    Examples:
        studypartner sweep
    """
    try:
        expired = _get_manager().expire_stale()
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not expired:
        console.print("[dim]No stale sessions.[/dim]")
        return

    console.print(f"[bold]Expired {len(expired)} session(s):[/bold]")
    for session_id in expired:
        console.print(f"  • {session_id}")


@app.command()
def sessions(
    user_id: str = typer.Argument(..., help="User whose sessions to list"),
    status: Optional[SessionStatus] = typer.Option(
        None, "--status", "-s", help="Only show sessions with this status"
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of sessions to show"),
):
    """List a user's AI partner sessions, most recent first.

    Examples:
        studypartner sessions user-123
        studypartner sessions user-123 -s paused
    """
    try:
        found = _get_manager().list_sessions(user_id, status=status, limit=limit)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not found:
        console.print(f"[dim]No sessions for user {user_id}.[/dim]")
        return

    table = Table(show_header=True, title=f"Sessions for {user_id}")
    table.add_column("Session ID", style="cyan")
    table.add_column("Status")
    table.add_column("Subject")
    table.add_column("Started", style="dim")
    table.add_column("Duration")
    table.add_column("Messages")

    for session in found:
        style = STATUS_STYLES[session.status]
        table.add_row(
            session.id,
            f"[{style}]{session.status.value}[/{style}]",
            session.subject or "-",
            _format_timestamp(session.started_at),
            _format_duration(session.total_duration_seconds),
            str(session.message_count),
        )

    console.print(table)


@app.command("end-all")
def end_all(
    user_id: str = typer.Argument(..., help="User whose open sessions to end"),
):
    """End every active or paused session of a user.

    Examples:
        studypartner end-all user-123
    """
    try:
        ended = _get_manager().complete_all(user_id)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"Ended {ended} open session(s) for {user_id}.")


@app.command()
def classify(
    message: str = typer.Argument(..., help="Message to classify"),
):
    """Show how the answer guard classifies a message.

    Examples:
        studypartner classify "just give me the answer"
    """
    verdict = classify_intent(message)
    color = "red" if verdict.is_answer_seeking else "green"

    console.print(
        Panel(
            f"[bold]Answer-seeking:[/bold] [{color}]{verdict.is_answer_seeking}[/{color}]\n"
            f"[bold]Confidence:[/bold] {verdict.confidence.value}\n"
            f"[bold]Matched:[/bold] {', '.join(verdict.matched_patterns) or '-'}",
            title="Intent",
            border_style=color,
        )
    )

    directive = guard_directive(verdict)
    if directive:
        console.print(directive.strip())


if __name__ == "__main__":
    app()
