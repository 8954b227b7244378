# orchestrator.py
# Session loop.
#
# The Orchestrator is the kernel. Planner, Executor and GoalChecker are passive
# responders; this class owns all control flow, the step queue, the context
# store and the re-plan budget.
#
# State machine:
#   PLANNING   -> EXECUTING                 plan created
#   PLANNING   -> PLANNING | FAILED         PlanningError (consumes budget)
#   EXECUTING  -> EVALUATING                one step executed and recorded
#   EVALUATING -> EXECUTING                 step succeeded, steps remain
#   EVALUATING -> PLANNING | FAILED         step failed, or goal not satisfied
#   EVALUATING -> DONE                      queue exhausted and goal satisfied
#
# Cancellation is observed at the top of every iteration, so no new step or
# LLM call begins once it is set. Nothing here prints; progress goes to the
# optional observer (the CLI passes the display module).

import logging
import threading
from collections import deque
from enum import Enum
from typing import Any

from cli_agent.config import Settings
from cli_agent.context import ContextStore
from cli_agent.dispatcher import ToolDispatcher
from cli_agent.errors import ErrorKind, PlanningError, ProviderError
from cli_agent.executor import Executor
from cli_agent.llm import LLMProvider
from cli_agent.models import (
    ActionKind,
    HistoryEntry,
    PlanStep,
    ProgressEvent,
    SessionReport,
    SessionStatus,
    ToolCall,
    ToolName,
    summarize,
)
from cli_agent.planner import GoalChecker, Planner
from cli_agent.tools import build_tools

LOGGER = logging.getLogger(__name__)

SURVEY_DESCRIPTION = "Initial directory listing"


class State(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    DONE = "done"
    FAILED = "failed"


class Orchestrator:
    """
    Drives one goal to Done or Failed.

    `replan_budget` counts planning rounds after the first: a budget of N
    allows at most N + 1 calls to `Planner.create_plan`. Without a
    `goal_checker`, an exhausted queue alone means Done.

    Example:
        orchestrator = Orchestrator.from_settings(goal, settings, provider)
        report = orchestrator.run()
    """

    def __init__(
        self,
        goal: str,
        planner: Planner,
        executor: Executor,
        goal_checker: GoalChecker | None = None,
        replan_budget: int = 3,
        dispatcher: ToolDispatcher | None = None,
        survey_workspace: bool = False,
        observer: Any = None,
        entry_limit: int = 500,
    ) -> None:
        if replan_budget < 0:
            raise ValueError("replan_budget must be >= 0")
        self._goal = goal
        self._planner = planner
        self._executor = executor
        self._goal_checker = goal_checker
        self._replan_budget = replan_budget
        self._dispatcher = dispatcher
        self._survey_workspace = survey_workspace
        self._observer = observer
        self._context = ContextStore(goal, entry_limit=entry_limit)
        self._cancelled = threading.Event()

        self._queue: deque[PlanStep] = deque()
        self._plan_size = 0
        self._replans_left = replan_budget
        self._planning_rounds = 0
        self._steps_executed = 0
        self._last_entry: HistoryEntry | None = None
        self._last_error: str | None = None
        self._last_error_kind: ErrorKind | None = None

    @classmethod
    def from_settings(
        cls,
        goal: str,
        settings: Settings,
        provider: LLMProvider,
        observer: Any = None,
        planner_provider: LLMProvider | None = None,
    ) -> "Orchestrator":
        """
        Wire tools, dispatcher, planner, executor and goal check from settings.

        `planner_provider` serves planning and the goal check; `provider`
        alone serves every role when it is None.
        """
        reasoning = planner_provider or provider
        dispatcher = ToolDispatcher(
            build_tools(
                command_timeout=settings.command_timeout,
                search_results=settings.search_results,
                brave_api_key=settings.brave_search_api_key,
            )
        )
        goal_checker = None
        if settings.completion_check == "llm":
            goal_checker = GoalChecker(reasoning, settings.context_budget)
        return cls(
            goal,
            planner=Planner(reasoning, settings.context_budget),
            executor=Executor(provider, dispatcher, settings.context_budget),
            goal_checker=goal_checker,
            replan_budget=settings.replan_budget,
            dispatcher=dispatcher,
            survey_workspace=settings.survey_workspace,
            observer=observer,
            entry_limit=settings.entry_limit,
        )

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def context(self) -> ContextStore:
        return self._context

    def cancel(self) -> None:
        """Request cancellation. Safe to call from a signal handler or another thread."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self) -> SessionReport:
        if self._survey_workspace and self._dispatcher is not None and not self.cancelled:
            self._survey()

        state = State.PLANNING
        while state not in (State.DONE, State.FAILED):
            if self.cancelled:
                LOGGER.warning("Session cancelled in state %s", state.value)
                return self._report(SessionStatus.FAILED, ErrorKind.CANCELLED, "session cancelled")

            LOGGER.info("State: %s", state.value)
            if state is State.PLANNING:
                state = self._plan()
            elif state is State.EXECUTING:
                state = self._execute()
            else:
                state = self._evaluate()

        if state is State.DONE:
            return self._report(SessionStatus.DONE)
        return self._report(
            SessionStatus.FAILED,
            self._last_error_kind,
            f"re-plan budget exhausted: {self._last_error}",
        )

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _survey(self) -> None:
        result = self._dispatcher.dispatch(
            ToolCall(tool_name=ToolName.LIST_FILES, arguments={"path": "."})
        )
        self._context.append(
            HistoryEntry(
                step_description=SURVEY_DESCRIPTION,
                action_kind=ActionKind.NOTE,
                input="ListFiles(path='.')",
                output=result.output,
                succeeded=result.succeeded,
                error=result.error,
                error_kind=None if result.succeeded else ErrorKind.TOOL_FAILURE,
            )
        )

    def _plan(self) -> State:
        self._planning_rounds += 1
        try:
            plan = self._planner.create_plan(self._goal, self._context)
        except PlanningError as exc:
            LOGGER.warning("Planning round %d failed: %s", self._planning_rounds, exc)
            self._context.append(
                HistoryEntry(
                    step_description=f"Planning round {self._planning_rounds}",
                    action_kind=ActionKind.NOTE,
                    succeeded=False,
                    error=str(exc),
                    error_kind=exc.error_kind,
                )
            )
            return self._replan(exc.error_kind, f"planning failed: {exc}")

        self._queue = deque(plan.steps)
        self._plan_size = len(plan)
        self._notify("plan_created", plan, self._planning_rounds)
        return State.EXECUTING

    def _execute(self) -> State:
        step = self._queue.popleft()
        self._notify("step_started", step, self._plan_size)

        entry = self._executor.execute_step(step, self._context)
        self._context.append(entry)
        self._steps_executed += 1
        self._last_entry = entry

        self._notify(
            "step_finished",
            ProgressEvent(
                planning_round=self._planning_rounds,
                step_index=step.index,
                total_steps=self._plan_size,
                description=step.description,
                action_kind=entry.action_kind,
                succeeded=entry.succeeded,
                summary=summarize(entry.output if entry.succeeded else entry.error or entry.output),
            ),
        )
        return State.EVALUATING

    def _evaluate(self) -> State:
        entry = self._last_entry
        if entry is not None and not entry.succeeded:
            return self._replan(
                entry.error_kind or ErrorKind.TOOL_FAILURE,
                f"step failed: {entry.step_description}: {entry.error}",
            )
        if self._queue:
            return State.EXECUTING
        if self._goal_checker is None:
            return State.DONE

        try:
            satisfied, reason = self._goal_checker.evaluate(self._goal, self._context)
        except ProviderError as exc:
            LOGGER.warning("Goal check failed: %s", exc)
            return self._replan(ErrorKind.PROVIDER_FAILURE, f"goal check failed: {exc}")
        if satisfied:
            return State.DONE

        error = "all steps ran but the goal is not yet satisfied"
        if reason:
            error = f"{error}: {reason}"
        self._context.append(
            HistoryEntry(
                step_description="Goal check",
                action_kind=ActionKind.NOTE,
                succeeded=False,
                error=error,
            )
        )
        return self._replan(self._last_error_kind, "goal not satisfied after the plan completed")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _replan(self, kind: ErrorKind | None, reason: str) -> State:
        self._last_error = reason
        self._last_error_kind = kind
        self._queue.clear()
        self._last_entry = None

        if self._replans_left <= 0:
            LOGGER.warning("Re-plan budget exhausted: %s", reason)
            return State.FAILED

        self._replans_left -= 1
        LOGGER.info("Re-planning (%d left): %s", self._replans_left, reason)
        self._notify("replanning", reason, self._replans_left)
        return State.PLANNING

    def _notify(self, event: str, *args: Any) -> None:
        handler = getattr(self._observer, event, None)
        if handler is not None:
            handler(*args)

    def _report(
        self,
        status: SessionStatus,
        error_kind: ErrorKind | None = None,
        error: str | None = None,
    ) -> SessionReport:
        return SessionReport(
            status=status,
            goal=self._goal,
            transcript=list(self._context.entries),
            planning_rounds=self._planning_rounds,
            steps_executed=self._steps_executed,
            error_kind=error_kind,
            error=error,
        )
