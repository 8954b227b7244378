# run.py
# Entry point. Config and wiring only; no logic lives here.
#
#   cli-agent                          interactive, one session per goal
#   cli-agent --goal "add a README"    single session, then exit
#
# Exit status: 0 when the last session ended Done, 1 when it failed,
# 2 on a configuration error.

import argparse
import signal
import sys

from cli_agent import display
from cli_agent.config import PROVIDER_NAMES, Settings, load_settings
from cli_agent.errors import ConfigError
from cli_agent.llm import LLMProvider, UsageTracker, create_provider
from cli_agent.models import SessionReport
from cli_agent.orchestrator import Orchestrator

EXIT_DONE = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

QUIT_WORDS = ("quit", "exit")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cli-agent",
        description="Goal-driven command-line agent: plans, runs tools and re-plans until done.",
    )
    parser.add_argument("--provider", choices=PROVIDER_NAMES, help="LLM vendor to use.")
    parser.add_argument("--model", help="Model name; defaults per provider.")
    parser.add_argument(
        "--planner-provider",
        choices=PROVIDER_NAMES,
        help="LLM vendor for planning and the goal check; defaults to --provider.",
    )
    parser.add_argument("--planner-model", help="Model for planning and the goal check.")
    parser.add_argument("--goal", help="Run a single goal and exit instead of prompting.")
    parser.add_argument("--replan-budget", type=int, help="Planning rounds allowed after the first.")
    parser.add_argument("--context-budget", type=int, help="Characters of context per prompt.")
    parser.add_argument(
        "--completion-check",
        choices=("llm", "exhaustion"),
        help="How to decide the goal is met once every step has run.",
    )
    parser.add_argument(
        "--no-survey",
        action="store_true",
        help="Skip the initial directory listing.",
    )
    parser.add_argument("--env-file", help="Load environment variables from this file.")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL.")
    parser.add_argument("--log-file", help="Also write logs to this file.")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    return load_settings(
        env_file=args.env_file,
        provider=args.provider,
        model=args.model,
        planner_provider=args.planner_provider,
        planner_model=args.planner_model,
        replan_budget=args.replan_budget,
        context_budget=args.context_budget,
        completion_check=args.completion_check,
        survey_workspace=False if args.no_survey else None,
        log_level=args.log_level,
        log_file=args.log_file,
    )


def run_goal(
    goal: str,
    settings: Settings,
    provider: LLMProvider,
    planner_provider: LLMProvider | None = None,
) -> SessionReport:
    """Run one session with Ctrl+C wired to cancellation."""
    display.goal_received(goal)
    orchestrator = Orchestrator.from_settings(
        goal, settings, provider, observer=display, planner_provider=planner_provider
    )

    def _on_sigint(signum, frame):
        display.cancelling()
        orchestrator.cancel()
        # a second Ctrl+C aborts immediately
        signal.signal(signal.SIGINT, signal.default_int_handler)

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        report = orchestrator.run()
    finally:
        signal.signal(signal.SIGINT, previous)

    display.session_report(report)
    return report


def interactive(
    settings: Settings,
    provider: LLMProvider,
    planner_provider: LLMProvider | None = None,
) -> SessionReport | None:
    last: SessionReport | None = None
    while True:
        try:
            goal = display.prompt_goal().strip()
        except (EOFError, KeyboardInterrupt):
            break
        if goal.lower() in QUIT_WORDS:
            break
        if not goal:
            display.empty_goal()
            continue
        last = run_goal(goal, settings, provider, planner_provider)
    display.goodbye()
    return last


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = settings_from_args(args)
        display.configure_logging(settings.log_level, settings.log_file)
        usage = UsageTracker()
        provider = create_provider(settings, usage=usage)
        planner_provider = None
        if settings.separate_planner:
            planner_provider = create_provider(settings.planner_settings(), usage=usage)
    except (ConfigError, OSError) as exc:
        display.halt(str(exc))
        return EXIT_CONFIG

    planner = None
    if settings.separate_planner:
        reasoning = settings.planner_settings()
        planner = f"{reasoning.provider}/{reasoning.resolved_model}"
    display.banner(settings.provider, settings.resolved_model, planner)

    if args.goal is not None:
        goal = args.goal.strip()
        if not goal:
            display.empty_goal()
            return EXIT_FAILED
        report = run_goal(goal, settings, provider, planner_provider)
    else:
        report = interactive(settings, provider, planner_provider)

    display.usage_summary(usage)
    if report is None or report.succeeded:
        return EXIT_DONE
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
