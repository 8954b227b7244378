# models.py
# Data contracts for the agent: history, plans, tool calls, session reports.
# No business logic lives here, only schema and validation.

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cli_agent.errors import ErrorKind

SUMMARY_LIMIT = 300


def summarize(text: str, limit: int = SUMMARY_LIMIT) -> str:
    """Clip `text` to `limit` characters, marking the cut with an ellipsis."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolName(str, Enum):
    READ_FILE = "ReadFile"
    WRITE_FILE = "WriteFile"
    RUN_COMMAND = "RunCommand"
    SEARCH = "Search"
    LIST_FILES = "ListFiles"

    @classmethod
    def from_hint(cls, text: str) -> "ToolName | None":
        """
        Resolve a loosely written tool name ("read_file", "Read-File",
        "runcommand") to a member. Returns None when nothing matches.
        """
        key = re.sub(r"[\s_\-]", "", text).lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        return None


REQUIRED_ARGUMENTS: dict[ToolName, tuple[str, ...]] = {
    ToolName.READ_FILE: ("path",),
    ToolName.WRITE_FILE: ("path", "content"),
    ToolName.RUN_COMMAND: ("command",),
    ToolName.SEARCH: ("query",),
    ToolName.LIST_FILES: ("path",),
}

_undeclared = set(ToolName) - set(REQUIRED_ARGUMENTS)
if _undeclared:
    raise RuntimeError(
        "REQUIRED_ARGUMENTS is missing: " + ", ".join(sorted(t.value for t in _undeclared))
    )


class ToolCall(BaseModel):
    """A structured request to run one tool."""

    tool_name: ToolName
    arguments: dict[str, str] = Field(default_factory=dict)

    def missing_arguments(self) -> list[str]:
        return [name for name in REQUIRED_ARGUMENTS[self.tool_name] if name not in self.arguments]


class ToolResult(BaseModel):
    succeeded: bool
    output: str = ""
    error: str | None = None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class ActionKind(str, Enum):
    TOOL_CALL = "ToolCall"
    GENERATED_CONTENT = "GeneratedContent"
    NOTE = "Note"


class HistoryEntry(BaseModel):
    """Immutable record of one completed action."""

    model_config = ConfigDict(frozen=True)

    step_description: str
    action_kind: ActionKind
    input: str = ""
    output: str = ""
    succeeded: bool = True
    error: str | None = None
    error_kind: ErrorKind | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class PlanStep(BaseModel):
    """A single unit of work recovered from a planning response."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="1-based, gapless position in the plan.")
    description: str
    tool_hint: ToolName | None = None
    raw_text: str = ""


class Plan(BaseModel):
    steps: list[PlanStep] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_indices(self) -> "Plan":
        expected = list(range(1, len(self.steps) + 1))
        if [step.index for step in self.steps] != expected:
            raise ValueError("plan step indices must run 1..N without gaps")
        return self

    def __len__(self) -> int:
        return len(self.steps)


# ---------------------------------------------------------------------------
# Session surface
# ---------------------------------------------------------------------------


class ProgressEvent(BaseModel):
    """Emitted once per completed step."""

    planning_round: int
    step_index: int
    total_steps: int
    description: str
    action_kind: ActionKind
    succeeded: bool
    summary: str


class SessionStatus(str, Enum):
    DONE = "Done"
    FAILED = "Failed"


class SessionReport(BaseModel):
    status: SessionStatus
    goal: str
    transcript: list[HistoryEntry] = Field(default_factory=list)
    planning_rounds: int = 0
    steps_executed: int = 0
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SessionStatus.DONE
