# planner.py
# Planner and goal-satisfaction check.
#
# The planner is stateless: one prompt, one LLM call, one parse. It never
# re-prompts; every failure is reported as a PlanningError and the
# orchestrator decides whether to spend re-plan budget on another attempt.

import json
import logging
import re

from cli_agent.context import ContextStore
from cli_agent.errors import PlanningError, PlanningFailure, PlanParseError, ProviderError
from cli_agent.llm import GenerationOptions, LLMProvider
from cli_agent.models import Plan
from cli_agent.parser import parse_plan

LOGGER = logging.getLogger(__name__)

PLANNER_SYSTEM = (
    "You are a master planner for a command-line coding agent. Your job is to "
    "create a step-by-step plan that accomplishes the user's goal."
)

PLANNER_PROMPT = """\
The user's goal is: "{goal}"

--- CONTEXT ---
Here is the current context, including existing files and previous actions:
{context}
--- END CONTEXT ---

Break the goal down into a numbered list of simple, single-purpose steps. \
A good plan usually starts by gathering information (listing or reading \
files, searching), then implements (writing code), then verifies (running \
tests or commands). If earlier actions failed, plan around the failure.

When a step maps directly onto one tool, begin it with the tool name in \
square brackets followed by the tool's argument:
- [ListFiles] <directory>
- [ReadFile] <path>
- [RunCommand] <shell command>
- [Search] <query>
- [WriteFile] <path> <what the file must contain>
Steps that need code or prose written first may be phrased in plain words; \
name the target file when there is one.

Output ONLY the numbered list of steps, one step per line. Do not include a \
preamble or conclusion.\
"""

GOAL_CHECK_SYSTEM = (
    "You are reviewing the work of a command-line coding agent. "
    "You answer with a single JSON object and nothing else."
)

GOAL_CHECK_PROMPT = """\
The user's goal is: "{goal}"

--- CONTEXT ---
{context}
--- END CONTEXT ---

Every planned step has been executed. Based only on the context above, has \
the goal been fully achieved?
Respond in JSON: {{"satisfied": true or false, "reason": "<one line>"}}\
"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class Planner:
    """Turns a goal plus rendered context into a Plan."""

    def __init__(
        self,
        provider: LLMProvider,
        context_budget: int = 12000,
        options: GenerationOptions | None = None,
    ) -> None:
        self._provider = provider
        self._context_budget = context_budget
        self._options = options or GenerationOptions(temperature=0.2, system=PLANNER_SYSTEM)

    def build_prompt(self, goal: str, context: ContextStore) -> str:
        return PLANNER_PROMPT.format(goal=goal, context=context.render(self._context_budget))

    def create_plan(self, goal: str, context: ContextStore) -> Plan:
        """
        Ask the LLM for a plan and parse it.

        Raises PlanningError(LLM_UNAVAILABLE) when the provider fails and
        PlanningError(PARSE_FAILURE) when no steps can be recovered.
        """
        prompt = self.build_prompt(goal, context)
        LOGGER.debug("Planner prompt:\n%s", prompt)
        try:
            response = self._provider.generate(prompt, self._options)
        except ProviderError as exc:
            raise PlanningError(PlanningFailure.LLM_UNAVAILABLE, str(exc)) from exc
        LOGGER.debug("Planner response:\n%s", response)

        try:
            plan = parse_plan(response)
        except PlanParseError as exc:
            raise PlanningError(PlanningFailure.PARSE_FAILURE, str(exc)) from exc

        LOGGER.info("Plan created with %d steps.", len(plan))
        return plan


def parse_verdict(response: str) -> tuple[bool, str]:
    """
    Read a goal-check answer as (satisfied, reason).

    The JSON object requested by GOAL_CHECK_PROMPT is preferred; models that
    ignore JSON mode and answer in prose are read by a leading YES.
    """
    match = _JSON_OBJECT.search(response)
    if match:
        try:
            data = json.loads(match.group(0))
        except ValueError:
            data = None
        if isinstance(data, dict) and "satisfied" in data:
            return data["satisfied"] is True, str(data.get("reason") or "").strip()

    first_line = response.strip().splitlines()[0] if response.strip() else ""
    verdict = first_line.lstrip("*#` ").upper()
    return verdict.startswith("YES"), first_line


class GoalChecker:
    """Asks the LLM whether the session transcript satisfies the goal."""

    def __init__(self, provider: LLMProvider, context_budget: int = 12000) -> None:
        self._provider = provider
        self._context_budget = context_budget
        self._options = GenerationOptions(temperature=0.0, json_mode=True, system=GOAL_CHECK_SYSTEM)

    def evaluate(self, goal: str, context: ContextStore) -> tuple[bool, str]:
        """Return (satisfied, reason). Raises ProviderError."""
        prompt = GOAL_CHECK_PROMPT.format(
            goal=goal, context=context.render(self._context_budget)
        )
        response = self._provider.generate(prompt, self._options)
        satisfied, reason = parse_verdict(response)
        LOGGER.info("Goal check verdict: %s (%s)", "yes" if satisfied else "no", reason)
        return satisfied, reason

    def is_satisfied(self, goal: str, context: ContextStore) -> bool:
        return self.evaluate(goal, context)[0]
