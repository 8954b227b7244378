# display.py
# All terminal output for cli-agent.
#
# This module owns presentation entirely. The orchestrator never formats
# strings; it notifies an observer and the CLI passes this module as that
# observer. Swap this file to change the entire UI.
#
# Colour language:
#   cyan    - session and planning events
#   blue    - step execution
#   yellow  - re-planning
#   green   - success
#   red     - failures and halts

import logging

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from cli_agent.llm import UsageTracker
from cli_agent.models import Plan, PlanStep, ProgressEvent, SessionReport

console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ")
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def configure_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """Route the cli_agent logger to stderr through rich, and optionally to a file."""
    logger = logging.getLogger("cli_agent")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    logger.addHandler(
        RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    )
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)


# ---------------------------------------------------------------------------
# Session entry
# ---------------------------------------------------------------------------


def banner(provider: str, model: str, planner: str | None = None) -> None:
    planner_line = ""
    if planner:
        planner_line = f"[dim]Planner  :[/dim] [white]{escape(planner)}[/white]\n"
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]cli-agent[/bold cyan]\n"
            "[dim]Plan, execute and re-plan against your workspace[/dim]\n\n"
            f"[dim]Provider :[/dim] [white]{escape(provider)}[/white]\n"
            f"[dim]Model    :[/dim] [white]{escape(model)}[/white]\n"
            f"{planner_line}\n"
            "[dim]Type 'quit' or 'exit' to leave.[/dim]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def goal_received(goal: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW GOAL[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(goal)}[/white]",
            title=_label("GOAL", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def empty_goal() -> None:
    console.print("[yellow]Please enter a goal.[/yellow]")


def prompt_goal() -> str:
    console.print()
    return console.input("[bold cyan]Goal>[/bold cyan] ")


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def plan_created(plan: Plan, planning_round: int) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", style="bold white", width=12)
    table.add_column("Description", style="white")

    for step in plan.steps:
        table.add_row(
            str(step.index),
            step.tool_hint.value if step.tool_hint else "[dim]generate[/dim]",
            escape(step.description),
        )

    console.print(
        Panel(
            table,
            title=_label(f"PLAN (round {planning_round})", "cyan"),
            subtitle=f"[dim]{len(plan)} step(s)[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def replanning(reason: str, remaining: int) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(_mono(reason, 300))}[/white]\n"
            f"[dim]{remaining} re-plan(s) left after this one.[/dim]",
            title=_label("RE-PLANNING", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def step_started(step: PlanStep, total: int) -> None:
    console.print()
    console.print(
        f"[bold blue]  STEP [{step.index}/{total}][/bold blue]  "
        f"[white]{escape(step.description)}[/white]"
    )


def step_finished(event: ProgressEvent) -> None:
    if event.succeeded:
        mark = "[bold green]✓[/bold green]"
    else:
        mark = "[bold red]✗[/bold red]"
    console.print(
        f"  {mark} [dim]{event.action_kind.value}[/dim]  "
        f"[white]{escape(_mono(event.summary, 300))}[/white]"
    )


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def session_report(report: SessionReport) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Kind", width=16)
    table.add_column("OK", justify="center", width=4)
    table.add_column("Step", style="white")
    table.add_column("Result", style="dim white")

    for i, entry in enumerate(report.transcript, start=1):
        ok = "[bold green]✓[/bold green]" if entry.succeeded else "[bold red]✗[/bold red]"
        result = entry.output if entry.succeeded else entry.error or entry.output
        table.add_row(
            str(i),
            entry.action_kind.value,
            ok,
            escape(_mono(entry.step_description, 60)),
            escape(_mono(result or "", 60)),
        )

    console.print(
        Panel(table, title="[dim]TRANSCRIPT[/dim]", border_style="dim", padding=(0, 1))
    )

    summary = (
        f"[dim]Planning rounds:[/dim] [white]{report.planning_rounds}[/white]   "
        f"[dim]Steps executed:[/dim] [white]{report.steps_executed}[/white]"
    )
    if report.succeeded:
        console.print(
            Panel(
                f"[bold green]Goal achieved.[/bold green]\n{summary}",
                title=_label("DONE", "green"),
                border_style="green",
                padding=(1, 2),
            )
        )
    else:
        kind = report.error_kind.value if report.error_kind else "unknown"
        console.print(
            Panel(
                f"[bold red]Session failed[/bold red] [dim]({kind})[/dim]\n"
                f"[white]{escape(report.error or '')}[/white]\n{summary}",
                title=_label("FAILED", "red"),
                border_style="red",
                padding=(1, 2),
            )
        )
    console.print()


def usage_summary(usage: UsageTracker) -> None:
    if not usage.calls:
        return
    console.print(
        f"[dim]LLM calls: {usage.calls}  tokens: {usage.total_tokens} "
        f"(prompt {usage.prompt_tokens}, completion {usage.completion_tokens})  "
        f"est. cost: ${usage.total_cost:.4f}[/dim]"
    )


def cancelling() -> None:
    console.print()
    console.print(
        _label("CANCEL", "red"),
        "[red] Finishing the current call, no further steps will start. "
        "Press Ctrl+C again to abort.[/red]",
    )


def goodbye() -> None:
    console.print("[dim]Goodbye.[/dim]")


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
