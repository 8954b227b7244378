# tools.py
# Tool collaborators: one callable per ToolName.
# Each takes the call's argument dict and returns text, raising ToolError (or
# letting OSError escape) on failure. The dispatcher is the only caller.

import os
import subprocess
from functools import partial
from pathlib import Path
from typing import Callable

import httpx

from cli_agent.errors import ToolError
from cli_agent.models import ToolName

ToolFn = Callable[[dict[str, str]], str]

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
SEARCH_TIMEOUT = 10
LIST_SKIP_DIRS = frozenset({".git", "target", "__pycache__", "node_modules", ".venv"})
MAX_LIST_ENTRIES = 500
MAX_OUTPUT_CHARS = 20000


def _require(args: dict[str, str], name: str) -> str:
    value = args.get(name, "").strip()
    if not value:
        raise ToolError(f"no {name} provided")
    return value


# ---------------------------------------------------------------------------
# File system
# ---------------------------------------------------------------------------


def _tool_read_file(args: dict[str, str]) -> str:
    path = _require(args, "path")
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as exc:
        raise ToolError(f"file not found: {path}") from exc


def _tool_write_file(args: dict[str, str]) -> str:
    path = _require(args, "path")
    content = args.get("content", "")
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return f"Wrote {len(content)} bytes to {path}."


def _tool_list_files(args: dict[str, str]) -> str:
    root = Path(args.get("path", "").strip() or ".")
    if not root.exists():
        raise ToolError(f"directory not found: {root}")
    if not root.is_dir():
        raise ToolError(f"not a directory: {root}")

    entries: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in LIST_SKIP_DIRS)
        base = Path(dirpath).relative_to(root)
        entries.extend(f"{(base / d).as_posix()}/" for d in dirnames)
        entries.extend((base / f).as_posix() for f in sorted(filenames))

    entries.sort()
    if len(entries) > MAX_LIST_ENTRIES:
        hidden = len(entries) - MAX_LIST_ENTRIES
        entries = entries[:MAX_LIST_ENTRIES] + [f"... ({hidden} more entries)"]
    return "\n".join(entries)


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------


def _tool_run_command(args: dict[str, str], timeout: float) -> str:
    command = _require(args, "command")
    try:
        completed = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ToolError(f"command timed out after {timeout:g}s") from exc
    except ValueError as exc:
        raise ToolError(f"invalid command: {exc}") from exc

    stdout = completed.stdout[:MAX_OUTPUT_CHARS]
    stderr = completed.stderr[:MAX_OUTPUT_CHARS]
    if completed.returncode != 0:
        raise ToolError(
            f"command exited with status {completed.returncode}",
            output=f"STDOUT:\n{stdout}\nSTDERR:\n{stderr}",
        )
    return stdout


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


def _format_hits(hits: list[dict[str, str]]) -> str:
    if not hits:
        return "No results found."
    lines = []
    for i, hit in enumerate(hits, start=1):
        lines.append(
            f"[Result {i}]\nTitle: {hit['title']}\nURL: {hit['url']}\nSnippet: {hit['snippet']}"
        )
    return "\n\n".join(lines)


def _brave_search(query: str, max_results: int, api_key: str) -> list[dict[str, str]]:
    try:
        response = httpx.get(
            BRAVE_SEARCH_URL,
            params={"q": query, "count": max_results},
            headers={"X-Subscription-Token": api_key, "Accept": "application/json"},
            timeout=SEARCH_TIMEOUT,
        )
    except httpx.HTTPError as exc:
        raise ToolError(f"Search failed: {exc}") from exc

    if response.status_code != 200:
        raise ToolError(f"Brave Search API error {response.status_code}: {response.text[:200]}")

    try:
        results = response.json().get("web", {}).get("results", [])
    except ValueError as exc:
        raise ToolError("Brave Search API returned a non-JSON response") from exc
    return [
        {
            "title": r.get("title", "No Title"),
            "url": r.get("url", ""),
            "snippet": r.get("description", ""),
        }
        for r in results[:max_results]
    ]


def _duckduckgo_search(query: str, max_results: int) -> list[dict[str, str]]:
    from ddgs import DDGS

    try:
        # Coerce the generator to a list to ensure actual execution
        results = list(DDGS().text(query, max_results=max_results))
    except Exception as e:
        raise ToolError(f"Search failed: {e}") from e

    return [
        {
            "title": r.get("title", "No Title"),
            "url": r.get("href", ""),
            "snippet": r.get("body", ""),
        }
        for r in results
    ]


def _tool_search(args: dict[str, str], max_results: int, brave_api_key: str | None) -> str:
    query = _require(args, "query")
    if brave_api_key:
        hits = _brave_search(query, max_results, brave_api_key)
    else:
        hits = _duckduckgo_search(query, max_results)
    return _format_hits(hits)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_tools(
    command_timeout: float = 60,
    search_results: int = 3,
    brave_api_key: str | None = None,
) -> dict[ToolName, ToolFn]:
    """Bind runtime settings into the tool callables."""
    return {
        ToolName.READ_FILE: _tool_read_file,
        ToolName.WRITE_FILE: _tool_write_file,
        ToolName.RUN_COMMAND: partial(_tool_run_command, timeout=command_timeout),
        ToolName.SEARCH: partial(
            _tool_search, max_results=search_results, brave_api_key=brave_api_key
        ),
        ToolName.LIST_FILES: _tool_list_files,
    }


TOOLS: dict[ToolName, ToolFn] = build_tools()
