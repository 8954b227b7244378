# config.py
# Runtime settings.
#
# Values come from the process environment (after loading a .env file) and
# can be overridden by keyword, which is how CLI flags are applied. Secrets
# are optional here; a provider that needs a missing key fails when built.

import os
from typing import Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cli_agent.context import MIN_RENDER_BUDGET
from cli_agent.errors import ConfigError

ProviderName = Literal["openai", "openrouter", "deepseek", "ollama", "claude", "gemini"]
PROVIDER_NAMES: tuple[str, ...] = ProviderName.__args__

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o",
    "openrouter": "anthropic/claude-3.5-haiku",
    "deepseek": "deepseek-chat",
    "claude": "claude-3-opus-20240229",
    "gemini": "gemini-1.5-flash",
}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# field name -> environment variable
ENV_VARS: dict[str, str] = {
    "provider": "AGENT_PROVIDER",
    "model": "AGENT_MODEL",
    "planner_provider": "AGENT_PLANNER_PROVIDER",
    "planner_model": "AGENT_PLANNER_MODEL",
    "openai_api_key": "OPENAI_API_KEY",
    "openrouter_api_key": "OPENROUTER_API_KEY",
    "deepseek_api_key": "DEEPSEEK_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "google_api_key": "GOOGLE_API_KEY",
    "brave_search_api_key": "BRAVE_SEARCH_API_KEY",
    "ollama_base_url": "OLLAMA_BASE_URL",
    "ollama_model": "OLLAMA_MODEL",
    "context_budget": "AGENT_CONTEXT_BUDGET",
    "replan_budget": "AGENT_REPLAN_BUDGET",
    "llm_timeout": "AGENT_LLM_TIMEOUT",
    "command_timeout": "AGENT_COMMAND_TIMEOUT",
    "completion_check": "AGENT_COMPLETION_CHECK",
    "survey_workspace": "AGENT_SURVEY_WORKSPACE",
    "entry_limit": "AGENT_ENTRY_LIMIT",
    "search_results": "AGENT_SEARCH_RESULTS",
    "log_level": "AGENT_LOG_LEVEL",
    "log_file": "AGENT_LOG_FILE",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: ProviderName = "openai"
    model: str | None = None
    # planning and the goal check; unset means the main provider/model
    planner_provider: ProviderName | None = None
    planner_model: str | None = None

    openai_api_key: str | None = None
    openrouter_api_key: str | None = None
    deepseek_api_key: str | None = None
    anthropic_api_key: str | None = None
    google_api_key: str | None = None
    brave_search_api_key: str | None = None

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    context_budget: int = Field(
        12000, ge=MIN_RENDER_BUDGET, description="Characters of context per prompt."
    )
    replan_budget: int = Field(3, ge=0)
    llm_timeout: float = Field(120, gt=0)
    command_timeout: float = Field(60, gt=0)
    completion_check: Literal["llm", "exhaustion"] = "llm"
    survey_workspace: bool = True
    entry_limit: int = Field(500, gt=0)
    search_results: int = Field(3, ge=1, le=20)

    log_level: str = "WARNING"
    log_file: str | None = None

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @property
    def resolved_model(self) -> str:
        if self.model:
            return self.model
        if self.provider == "ollama":
            return self.ollama_model
        return DEFAULT_MODELS[self.provider]

    @property
    def separate_planner(self) -> bool:
        return bool(self.planner_provider or self.planner_model)

    def planner_settings(self) -> "Settings":
        """Settings that build the planning provider; self when no override is set."""
        if not self.separate_planner:
            return self
        provider = self.planner_provider or self.provider
        model = self.planner_model
        if model is None and provider == self.provider:
            model = self.model
        return self.model_copy(update={"provider": provider, "model": model})


def load_settings(env_file: str | None = None, **overrides) -> Settings:
    """
    Build Settings from .env + environment, then apply non-None overrides.

    Raises ConfigError on any invalid value.
    """
    if env_file is not None:
        if not os.path.isfile(env_file):
            raise ConfigError(f"env file '{env_file}' does not exist")
        load_dotenv(dotenv_path=env_file)
    else:
        load_dotenv(find_dotenv(usecwd=True))

    values: dict[str, object] = {}
    for field_name, env_name in ENV_VARS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw.strip():
            values[field_name] = raw.strip()
    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
