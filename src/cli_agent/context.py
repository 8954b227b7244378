# context.py
# Context/State Store.
#
# Owns the goal and the append-only history for one session. `render` is the
# only view handed to prompts: it always carries the goal and as many of the
# most recent entries as fit in the character budget, oldest evicted first.

from cli_agent.models import HistoryEntry, summarize

GOAL_PREFIX = "The overall goal is: "
HISTORY_HEADER = "\n--- History & Context ---\n"
EMPTY_HISTORY = "No actions have been taken yet.\n"
TRUNCATION_MARKER = "[...goal truncated]"
MIN_RENDER_BUDGET = len(TRUNCATION_MARKER)


class ContextStore:
    """
    Goal plus chronological history of completed actions.

    Entries are never removed; eviction only affects what `render` emits.
    """

    def __init__(self, goal: str, entry_limit: int = 500) -> None:
        self._goal = goal
        self._entry_limit = entry_limit
        self._entries: list[HistoryEntry] = []

    @property
    def goal(self) -> str:
        return self._goal

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def is_empty(self) -> bool:
        return not self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_entry(self, entry: HistoryEntry) -> str:
        status = "" if entry.succeeded else " FAILED"
        lines = [f"[{entry.action_kind.value}{status}] {entry.step_description}"]
        if entry.input:
            lines.append(f"Input: {summarize(entry.input, self._entry_limit)}")
        if entry.output:
            lines.append(summarize(entry.output, self._entry_limit))
        if entry.error:
            lines.append(f"Error: {entry.error}")
        lines.append("---")
        return "\n".join(lines) + "\n"

    def render(self, budget: int) -> str:
        """
        Bounded textual view of goal + recent history.

        The result is never longer than `budget` characters. When the goal
        alone does not fit it is cut and TRUNCATION_MARKER is appended, so
        `budget` must leave room for at least the marker.
        """
        if budget < MIN_RENDER_BUDGET:
            raise ValueError(f"budget must be at least {MIN_RENDER_BUDGET} characters")
        goal_part = f"{GOAL_PREFIX}{self._goal}\n"
        if len(goal_part) > budget:
            keep = budget - len(TRUNCATION_MARKER)
            return goal_part[:keep] + TRUNCATION_MARKER

        remaining = budget - len(goal_part) - len(HISTORY_HEADER)
        if remaining < 0:
            return goal_part

        if not self._entries:
            if len(EMPTY_HISTORY) <= remaining:
                return goal_part + HISTORY_HEADER + EMPTY_HISTORY
            return goal_part + HISTORY_HEADER

        kept: list[str] = []
        for entry in reversed(self._entries):
            block = self.render_entry(entry)
            if len(block) > remaining:
                break
            kept.append(block)
            remaining -= len(block)

        omitted = len(self._entries) - len(kept)
        body = "".join(reversed(kept))
        if omitted:
            note = f"({omitted} earlier entries omitted)\n"
            if len(note) <= remaining:
                body = note + body
        return goal_part + HISTORY_HEADER + body
