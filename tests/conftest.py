from unittest.mock import MagicMock

import pytest

from cli_agent.config import ENV_VARS
from cli_agent.dispatcher import ToolDispatcher
from cli_agent.models import ToolName


class ScriptedProvider:
    """
    Deterministic LLM substitute. Hands out `responses` in order; an
    Exception instance in the list is raised instead of returned.
    """

    def __init__(self, responses):
        self._responses = list(responses)
        self.prompts = []
        self.options = []

    def generate(self, prompt, options=None):
        self.prompts.append(prompt)
        self.options.append(options)
        if not self._responses:
            raise AssertionError(f"unexpected LLM call:\n{prompt}")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def scripted():
    return ScriptedProvider


@pytest.fixture
def mock_tools():
    tools = {}
    for name in ToolName:
        tools[name] = MagicMock(name=name.value, return_value=f"{name.value} ok")
    return tools


@pytest.fixture
def dispatcher(mock_tools):
    return ToolDispatcher(mock_tools)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # setenv first so teardown restores "unset" even for variables that
    # load_dotenv later writes straight into os.environ
    for name in ENV_VARS.values():
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path
