# dispatcher.py
# Tool Dispatcher.
#
# Maps a ToolCall onto its collaborator. Arguments are checked against
# REQUIRED_ARGUMENTS before anything runs; a collaborator is never invoked for
# an incomplete call. No retries and no interpretation: the collaborator's
# text or failure is passed straight back as a ToolResult.

import logging
from collections.abc import Mapping

from cli_agent.errors import ToolError
from cli_agent.models import ToolCall, ToolName, ToolResult
from cli_agent.tools import TOOLS, ToolFn

LOGGER = logging.getLogger(__name__)


class ToolDispatcher:
    def __init__(self, tools: Mapping[ToolName, ToolFn] | None = None) -> None:
        registry = dict(TOOLS if tools is None else tools)
        missing = set(ToolName) - set(registry)
        if missing:
            names = ", ".join(sorted(t.value for t in missing))
            raise ValueError(f"No collaborator registered for: {names}")
        self._tools = registry

    def dispatch(self, call: ToolCall) -> ToolResult:
        missing = call.missing_arguments()
        if missing:
            LOGGER.warning("Rejected %s call: missing argument %s", call.tool_name.value, missing[0])
            return ToolResult(succeeded=False, error=f"missing argument {missing[0]}")

        LOGGER.info("Dispatching %s %s", call.tool_name.value, _describe(call))
        tool = self._tools[call.tool_name]
        try:
            output = tool(dict(call.arguments))
        except ToolError as exc:
            LOGGER.warning("%s failed: %s", call.tool_name.value, exc)
            return ToolResult(succeeded=False, output=exc.output, error=str(exc))
        except OSError as exc:
            LOGGER.warning("%s failed: %s", call.tool_name.value, exc)
            return ToolResult(succeeded=False, error=f"{type(exc).__name__}: {exc}")
        except Exception as exc:
            LOGGER.exception("%s raised unexpectedly", call.tool_name.value)
            return ToolResult(succeeded=False, error=f"{type(exc).__name__}: {exc}")

        return ToolResult(succeeded=True, output=output)


def _describe(call: ToolCall) -> str:
    # content can be an entire source file; keep the log line short
    shown = {k: v for k, v in call.arguments.items() if k != "content"}
    return ", ".join(f"{k}={v!r}" for k, v in shown.items())
