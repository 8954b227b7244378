# parser.py
# Plan parser: free-text LLM output -> Plan.
#
# Line-oriented and permissive. A step starts at any line opening with an
# ordinal marker (1.  2)  (3)  Step 4:  a.  b)  -  *  +  •) followed by
# whitespace. Unmarked lines extend the current step; anything before the
# first marker is preamble and dropped. Steps are renumbered 1..N in the order
# found, whatever numbers the model wrote.

import re

from cli_agent.errors import PlanParseError
from cli_agent.models import Plan, PlanStep, ToolName

_MARKER = re.compile(
    r"""
    ^\s*
    (?:
        (?:step\s+)?\(?\d{1,3}[.):]     # 1.  1)  (1)  Step 1:
      | \(?[a-z][.)]                    # a.  b)  (c)
      | [-*+•]                     # bullets
    )
    (?:\s+(?P<body>.*))?$
    """,
    re.VERBOSE | re.IGNORECASE,
)

_BRACKET_HINT = re.compile(r"^\[(?P<tool>[A-Za-z _\-]+)\]\s*(?P<rest>.*)$", re.DOTALL)
_COLON_HINT = re.compile(r"^`?(?P<tool>[A-Za-z_\-]+)`?:\s*(?P<rest>.*)$", re.DOTALL)


def _split_tool_hint(text: str) -> tuple[ToolName | None, str]:
    """
    Peel a leading tool tag off a step body.

    "[RunCommand] pytest -q" -> (RUN_COMMAND, "pytest -q")
    "read_file: src/app.py"  -> (READ_FILE, "src/app.py")

    A tag that does not name a known tool is left in the description.
    """
    for pattern in (_BRACKET_HINT, _COLON_HINT):
        match = pattern.match(text)
        if not match:
            continue
        tool = ToolName.from_hint(match.group("tool"))
        if tool is not None:
            return tool, match.group("rest").strip()
    return None, text


def parse_plan(raw: str) -> Plan:
    """
    Recover an ordered Plan from `raw`.

    Raises PlanParseError when not a single marked line is present.
    """
    blocks: list[tuple[list[str], list[str]]] = []

    for line in raw.splitlines():
        match = _MARKER.match(line)
        if match:
            body = (match.group("body") or "").strip()
            blocks.append(([line], [body] if body else []))
        elif blocks and line.strip():
            raw_lines, parts = blocks[-1]
            raw_lines.append(line)
            parts.append(line.strip())

    if not blocks:
        raise PlanParseError("no plan steps found in LLM response")

    steps: list[PlanStep] = []
    for index, (raw_lines, parts) in enumerate(blocks, start=1):
        tool_hint, description = _split_tool_hint(" ".join(parts))
        steps.append(
            PlanStep(
                index=index,
                description=description,
                tool_hint=tool_hint,
                raw_text="\n".join(raw_lines),
            )
        )
    return Plan(steps=steps)
