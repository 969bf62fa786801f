"""Console output for the DataDAO CLI."""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

BAR_WIDTH = 20

SummaryItem = Union[str, Dict[str, Any], Tuple[str, Any]]


def render_progress_bar(current: int, total: int, width: int = BAR_WIDTH) -> Tuple[str, int]:
    """
    Build a text progress bar.

    Args:
        current: Units done
        total: Units overall; zero renders an empty bar at 0%
        width: Bar width in characters

    Returns:
        Tuple of (bar, percentage)
    """
    if total == 0:
        return "░" * width, 0
    percentage = round(current / total * 100)
    filled = max(0, min(width, round(current / total * width)))
    return "█" * filled + "░" * (width - filled), percentage


class OutputManager:
    """
    User-facing console output.

    Diagnostics go through loguru; everything the user is meant to read goes
    through here so quiet mode and styling stay consistent across commands.
    """

    def __init__(self, console: Optional[Console] = None, quiet: bool = False):
        self.console = console or Console(highlight=False)
        self.quiet = quiet

    def set_quiet(self, quiet: bool = True) -> None:
        self.quiet = quiet

    def use_console(self, console: Console) -> None:
        self.console = console

    def step(self, title: str, description: str = "") -> None:
        self.console.print()
        self.console.print(f"[bold blue]🔄 {escape(title)}[/bold blue]")
        if description:
            self.console.print(f"[dim]   {escape(description)}[/dim]")
        self.console.print()

    def success(self, message: str) -> None:
        self.console.print(f"[green]✅ {escape(message)}[/green]")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠️  {escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]❌ {escape(message)}[/red]")

    def info(self, message: str, force: bool = False) -> None:
        if not self.quiet or force:
            self.console.print(f"[cyan]ℹ️  {escape(message)}[/cyan]")

    def progress(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[blue]⏳ {escape(message)}[/blue]")

    def detail(self, message: str) -> None:
        """Indented secondary line under the previous message."""
        self.console.print(f"[dim]   {escape(message)}[/dim]")

    def summary(self, title: str, items: Iterable[SummaryItem]) -> None:
        self.console.print()
        self.console.print(f"[bold blue]📋 {escape(title)}[/bold blue]")
        for item in items:
            if isinstance(item, str):
                self.console.print(f"  • {escape(item)}")
                continue
            if isinstance(item, dict):
                label, value = item["label"], item["value"]
            else:
                label, value = item
            self.console.print(f"  • [cyan]{escape(str(label))}[/cyan]: {escape(str(value))}")
        self.console.print()

    def next_steps(self, steps: Sequence[str]) -> None:
        self.console.print()
        self.console.print("[bold blue]🚀 Next Steps:[/bold blue]")
        for index, step in enumerate(steps, 1):
            self.console.print(f"  {index}. {escape(step)}")
        self.console.print()

    def numbered(self, title: str, steps: Sequence[str], style: str = "blue") -> None:
        """Numbered list under a heading, used for recovery instructions."""
        self.console.print(f"[{style}]{escape(title)}[/{style}]")
        for index, step in enumerate(steps, 1):
            self.console.print(f"   {index}. {escape(step)}")

    def bullets(self, items: Iterable[str], style: str = "dim") -> None:
        for item in items:
            self.console.print(f"[{style}]   • {escape(item)}[/{style}]")

    def progress_bar(self, current: int, total: int, message: str = "") -> None:
        bar, percentage = render_progress_bar(current, total)
        end = "\n" if total and current == total else "\r"
        self.console.print(f"[blue]{bar}[/blue] {percentage}% {escape(message)}", end=end)

    def progress_list(self, title: str, items: Sequence[Tuple[str, bool]]) -> None:
        self.console.print()
        self.console.print(f"[blue]📋 {escape(title)}:[/blue]")
        for label, done in items:
            marker = "[green]✅[/green]" if done else "[dim]⏸️[/dim]"
            self.console.print(f"  {marker} {escape(label)}")
        self.console.print()

    def banner(self, title: str, subtitle: str = "", style: str = "blue") -> None:
        body = f"[bold]{escape(title)}[/bold]"
        if subtitle:
            body += f"\n{escape(subtitle)}"
        self.console.print(Panel(body, border_style=style, expand=False))


output = OutputManager()
