"""
Console rendering for the ai CLI.

- Everything user-facing goes through one rich Console (honours NO_COLOR)
- Progress bars for the local model download/load
- Confirmation prompt through prompt_toolkit
"""

from __future__ import annotations

from typing import List, Optional

from prompt_toolkit import PromptSession
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TextColumn

from .safety import DangerVerdict

console = Console()
err_console = Console(stderr=True)


def show_response(raw: str) -> None:
    console.print("\n[bold cyan]AI Response:[/]\n")
    console.print(escape(raw), highlight=False)


def show_command(command: str, explanation: Optional[str] = None) -> None:
    if explanation:
        console.print(f"\n[green]Explanation:[/] {escape(explanation)}")
    console.print(Panel(escape(command), title="Command", border_style="bright_blue", expand=False))


def show_danger(verdict: DangerVerdict) -> None:
    lines: List[str] = [
        "[bold red]** WARNING: This command looks dangerous and will not be executed automatically. **[/]"
    ]
    if verdict.reason:
        lines.append(f"  [dim]Reason:[/]  {escape(verdict.reason)}")
    if verdict.matched_pattern:
        lines.append(f"  [dim]Pattern:[/] {escape(verdict.matched_pattern)}")
    if verdict.segment:
        lines.append(f"  [dim]In:[/]      {escape(verdict.segment)}")
    err_console.print("\n" + "\n".join(lines))


def show_no_command(raw: str, reason: str) -> None:
    err_console.print(f"\n[yellow]No runnable command found[/] ({escape(reason)}). The model replied:\n")
    err_console.print(escape(raw), highlight=False)


def show_result(result: dict) -> None:
    if result.get("exit_code"):
        err_console.print(f"[red]Execution error (exit {result['exit_code']}):[/]")
    if result.get("stderr"):
        err_console.print(f"Stderr:\n{escape(result['stderr'])}", highlight=False)
    if result.get("stdout"):
        console.print(f"Output:\n{escape(result['stdout'])}", highlight=False)


def error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/] {escape(message)}")


def info(message: str) -> None:
    console.print(message)


def plain(text: str) -> None:
    console.print(text, markup=False, highlight=False)


def ask(message: str, is_password: bool = False) -> str:
    return PromptSession().prompt(message, is_password=is_password)


class ProgressDisplay:
    """Progress sink that renders one bar per download/load cycle.

    Safe to call from the download thread; rich's Progress is thread-safe.
    """

    def __init__(self, description: str = "Preparing local model") -> None:
        self.description = description
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def __call__(self, percentage: int) -> None:
        if self._progress is None:
            self._progress = Progress(
                TextColumn("[cyan]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                console=err_console,
            )
            self._progress.start()
            self._task = self._progress.add_task(self.description, total=100)
        self._progress.update(self._task, completed=percentage)
        if percentage >= 100:
            self.close()

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None


__all__ = [
    "console",
    "err_console",
    "show_response",
    "show_command",
    "show_danger",
    "show_no_command",
    "show_result",
    "error",
    "info",
    "plain",
    "ask",
    "ProgressDisplay",
]
