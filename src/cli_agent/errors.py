# errors.py
# Exception taxonomy for the agent.
#
# Failures local to one tool call or one LLM call are converted to data at the
# component boundary. Only the classes below ever cross module boundaries.

from enum import Enum


class ErrorKind(str, Enum):
    """Taxonomy reported on a failed session."""

    PROVIDER_FAILURE = "provider_failure"
    PARSE_FAILURE = "parse_failure"
    TOOL_FAILURE = "tool_failure"
    CANCELLED = "cancelled"


class PlanningFailure(str, Enum):
    LLM_UNAVAILABLE = "llm_unavailable"
    PARSE_FAILURE = "parse_failure"


class AgentError(Exception):
    """Base class for every error raised by cli_agent."""


class ConfigError(AgentError):
    """Raised when settings are invalid or a provider cannot be built."""


# ---------------------------------------------------------------------------
# LLM provider failures
# ---------------------------------------------------------------------------


class ProviderError(AgentError):
    """Raised by an LLM provider when no completion could be produced."""


class ProviderUnavailable(ProviderError):
    """Endpoint unreachable, timed out, or returned a server error."""


class ProviderRateLimited(ProviderError):
    """The vendor refused the request because of rate limiting."""


class ProviderInvalidResponse(ProviderError):
    """The vendor answered but the payload held no usable completion."""


# ---------------------------------------------------------------------------
# Planning failures
# ---------------------------------------------------------------------------


class PlanParseError(AgentError):
    """Raised when no ordinal-marked step can be recovered from LLM output."""


class PlanningError(AgentError):
    """Raised by the planner. `kind` tells the orchestrator what went wrong."""

    def __init__(self, kind: PlanningFailure, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def error_kind(self) -> ErrorKind:
        if self.kind is PlanningFailure.PARSE_FAILURE:
            return ErrorKind.PARSE_FAILURE
        return ErrorKind.PROVIDER_FAILURE


# ---------------------------------------------------------------------------
# Tool failures
# ---------------------------------------------------------------------------


class ToolError(AgentError):
    """
    Raised by a tool collaborator.

    `output` carries whatever partial text the tool produced before failing
    (e.g. stdout/stderr of a command that exited non-zero).
    """

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output
