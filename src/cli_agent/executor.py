# executor.py
# Execution component: one PlanStep in, one HistoryEntry out.
#
#   tool_hint present      -> extract arguments from the description -> Dispatch
#   tool_hint == WriteFile -> generate the file content first        -> Dispatch
#   no tool_hint           -> generate content, infer the action:
#                               target path found -> WriteFile       -> Dispatch
#                               otherwise         -> Note (no dispatch)
#
# Single pass, no sub-plans, no retries. Provider and tool failures come back
# as a failed HistoryEntry; nothing raises past this module.

import logging
import re

from cli_agent.context import ContextStore
from cli_agent.dispatcher import ToolDispatcher
from cli_agent.errors import ErrorKind, ProviderError
from cli_agent.llm import GenerationOptions, LLMProvider
from cli_agent.models import ActionKind, HistoryEntry, PlanStep, ToolCall, ToolName

LOGGER = logging.getLogger(__name__)

CODER_SYSTEM = (
    "You are an expert programmer. Your sole responsibility is to write clean, "
    "efficient, and correct code or text for the task you are given."
)

CODER_PROMPT = """\
--- Context ---
{context}
--- End Context ---

Your current task is: "{task}"
{target}
By default write Python, unless the task calls for a different language.
Output ONLY the raw content. Do not include explanations or markdown code fences.\
"""

TARGET_KNOWN = "The content will be saved to `{path}`. Output only the file content.\n"
TARGET_UNKNOWN = (
    "If the result belongs in a file, put the target path alone on the first line "
    "as `FILE: <path>` and the file content after it.\n"
)

_BACKTICKED = re.compile(r"`([^`]+)`")
_QUOTED = re.compile(r"`([^`]+)`|\"([^\"]+)\"|'([^']+)'")
_EXTENSION = re.compile(r"\.\w{1,8}$")
_FILE_HEADER = re.compile(r"^(?:file|path|filename)\s*:\s*`?([^\s`]+)`?\s*$", re.IGNORECASE)
_FENCE_INFO_PATH = re.compile(r"^```[\w+\-]*\s+`?([\w./\-]+\.\w{1,8})`?\s*$")


# ---------------------------------------------------------------------------
# Argument extraction
# ---------------------------------------------------------------------------


def _first_quoted(text: str) -> str | None:
    match = _QUOTED.search(text)
    if not match:
        return None
    return next(group for group in match.groups() if group is not None).strip()


def extract_path(text: str) -> str | None:
    """Best-effort path from a step description, or None."""
    quoted = _first_quoted(text)
    if quoted:
        return quoted

    tokens = [t.strip(",;:()[]") for t in text.split()]
    for token in tokens:
        if token in (".", ".."):
            return token
        token = token.rstrip(".")
        if "/" in token or _EXTENSION.search(token):
            return token
    if len(tokens) == 1 and tokens[0]:
        return tokens[0]
    return None


def extract_arguments(tool: ToolName, description: str) -> dict[str, str]:
    """
    Arguments for a directly executable step. WriteFile content is not
    extracted here; it is generated.
    """
    text = description.strip()
    if tool is ToolName.RUN_COMMAND:
        # only backticks delimit a command; quotes belong to the shell
        match = _BACKTICKED.search(text)
        command = match.group(1).strip() if match else text
        return {"command": command} if command else {}
    if tool is ToolName.SEARCH:
        query = _first_quoted(text) or text
        return {"query": query} if query else {}
    if tool is ToolName.LIST_FILES:
        return {"path": extract_path(text) or "."}

    path = extract_path(text)
    return {"path": path} if path else {}


# ---------------------------------------------------------------------------
# Generated-content inference
# ---------------------------------------------------------------------------


def strip_fences(text: str) -> str:
    lines = text.strip().splitlines()
    if len(lines) >= 2 and lines[0].startswith("```") and lines[-1].strip() == "```":
        return "\n".join(lines[1:-1])
    return text.strip()


def split_target(generated: str) -> tuple[str | None, str]:
    """
    Look for a target path in generated output.

    Recognises a leading `FILE: <path>` line or a code fence whose info
    string names a file (```python src/app.py). Returns (path, content).
    """
    lines = generated.strip().splitlines()
    if not lines:
        return None, ""

    header = _FILE_HEADER.match(lines[0].strip())
    if header:
        return header.group(1), strip_fences("\n".join(lines[1:]))

    fence = _FENCE_INFO_PATH.match(lines[0].strip())
    if fence:
        return fence.group(1), strip_fences(generated)

    return None, strip_fences(generated)


def _describe_call(call: ToolCall) -> str:
    args = ", ".join(f"{k}={v!r}" for k, v in call.arguments.items() if k != "content")
    text = f"{call.tool_name.value}({args})"
    if "content" in call.arguments:
        text += "\n" + call.arguments["content"]
    return text


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class Executor:
    def __init__(
        self,
        provider: LLMProvider,
        dispatcher: ToolDispatcher,
        context_budget: int = 12000,
        options: GenerationOptions | None = None,
    ) -> None:
        self._provider = provider
        self._dispatcher = dispatcher
        self._context_budget = context_budget
        self._options = options or GenerationOptions(temperature=0.2, system=CODER_SYSTEM)

    def execute_step(self, step: PlanStep, context: ContextStore) -> HistoryEntry:
        LOGGER.info("Executing step %d: %s", step.index, step.description)

        if step.tool_hint is ToolName.WRITE_FILE:
            return self._generate_and_write(step, context, extract_path(step.description))

        if step.tool_hint is not None:
            call = ToolCall(
                tool_name=step.tool_hint,
                arguments=extract_arguments(step.tool_hint, step.description),
            )
            return self._dispatch(step, call, ActionKind.TOOL_CALL)

        return self._generate_and_write(step, context, None)

    # ------------------------------------------------------------------

    def _generate(self, step: PlanStep, context: ContextStore, path: str | None) -> str:
        target = TARGET_KNOWN.format(path=path) if path else TARGET_UNKNOWN
        prompt = CODER_PROMPT.format(
            context=context.render(self._context_budget),
            task=step.description,
            target=target,
        )
        LOGGER.debug("Coder prompt:\n%s", prompt)
        return self._provider.generate(prompt, self._options)

    def _generate_and_write(
        self, step: PlanStep, context: ContextStore, path: str | None
    ) -> HistoryEntry:
        try:
            generated = self._generate(step, context, path)
        except ProviderError as exc:
            LOGGER.warning("Content generation failed for step %d: %s", step.index, exc)
            return HistoryEntry(
                step_description=step.description,
                action_kind=ActionKind.GENERATED_CONTENT,
                input=step.description,
                succeeded=False,
                error=f"content generation failed: {exc}",
                error_kind=ErrorKind.PROVIDER_FAILURE,
            )

        inferred_path, content = split_target(generated)
        target = path or inferred_path
        if step.tool_hint is None and target is None:
            return HistoryEntry(
                step_description=step.description,
                action_kind=ActionKind.NOTE,
                input=step.description,
                output=content,
                succeeded=True,
            )

        arguments = {"content": content}
        if target:
            arguments["path"] = target
        call = ToolCall(tool_name=ToolName.WRITE_FILE, arguments=arguments)
        return self._dispatch(step, call, ActionKind.GENERATED_CONTENT)

    def _dispatch(self, step: PlanStep, call: ToolCall, kind: ActionKind) -> HistoryEntry:
        result = self._dispatcher.dispatch(call)
        return HistoryEntry(
            step_description=step.description,
            action_kind=kind,
            input=_describe_call(call),
            output=result.output,
            succeeded=result.succeeded,
            error=result.error,
            error_kind=None if result.succeeded else ErrorKind.TOOL_FAILURE,
        )
