from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cardmirror.core.auth import DeviceCode
from cardmirror.core.engine import ArtifactStatus, Reporter
from cardmirror.core.logging import get_logger
from cardmirror.core.models import LoadedCard, RunSummary

console = Console()
logger = get_logger(__name__)

STATUS_MARKS = {
    ArtifactStatus.PRESENT: "[green]✓[/green]",
    ArtifactStatus.COPIED: "[yellow]…[/yellow]",
    ArtifactStatus.MISSING: "[red]…[/red]",
    ArtifactStatus.SKIPPED: "[green]✓[/green]",
}

class ConsoleReporter(Reporter):
    """Prints one line per card and per artifact, in the style of a checklist."""

    def __init__(self, out: Optional[Console] = None):
        self.console = out or console

    def card_started(self, index: int, total: int, card: LoadedCard) -> None:
        self.console.print(f"[bold]{card.display_title}[/bold] ({card.card_id}) ({index}/{total})", highlight=False)

    def card_skipped(self, entry: object, reason: str) -> None:
        self.console.print(f"[red]Skipping {entry}: {reason}[/red]", highlight=False)

    def artifact(self, status: ArtifactStatus, name: str, detail: Optional[str] = None) -> None:
        mark = STATUS_MARKS[status]
        if status is ArtifactStatus.SKIPPED:
            line = f"  {mark} Skipping stream: {name}"
        elif status is ArtifactStatus.MISSING:
            line = f"  {mark} {name} - missing"
        elif detail and status is ArtifactStatus.COPIED:
            line = f"  {mark} {name} ({detail})"
        else:
            line = f"  {mark} {name}"
        self.console.print(line, highlight=False)


def display_summary(summary: RunSummary, out: Optional[Console] = None) -> None:
    """Displays the run totals; shown even when the run stopped early."""
    out = out or console
    table = Table.grid(padding=(0, 2))
    table.add_row("Total cards:", str(summary.total))
    table.add_row("Copied new content:", str(summary.copied))
    table.add_row("Missing content:", str(summary.missing))
    out.print()
    out.print(Panel(table, title="Summary", border_style="blue", expand=False))

    if summary.missing_cards:
        out.print("[dim]Cards with missing content:[/dim]")
        for title in summary.missing_cards:
            out.print(f"[dim]  - {title}[/dim]", highlight=False)


def display_device_code(code: DeviceCode, out: Optional[Console] = None) -> None:
    """Tells the user where to authorize this device."""
    out = out or console
    url = code.verification_uri_complete or code.verification_uri
    out.print(Panel(
        f"Please head to [cyan]{url}[/cyan] to authorize this application.\n"
        f"Code: [bold]{code.user_code}[/bold]",
        border_style="green",
    ))
    out.print("Waiting for authorization...")


def print_error(message: str, out: Optional[Console] = None) -> None:
    (out or console).print(f"[red]Error: {message}[/red]", highlight=False)


def print_warning(message: str, out: Optional[Console] = None) -> None:
    (out or console).print(f"[yellow]Warning: {message}[/yellow]", highlight=False)


def print_ok(message: str, out: Optional[Console] = None) -> None:
    (out or console).print(f"[green]✓ {message}[/green]", highlight=False)
