"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AgentDefaults(Base):
    """Default agent configuration."""

    workspace: str = "~/.picobot/workspace"
    model: str = "claude-opus-4-6"
    max_tokens: int = 8096
    system_prompt: str = "You are a helpful assistant."


class AgentsConfig(Base):
    """Agent configuration."""

    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class ProviderConfig(Base):
    """LLM provider configuration."""

    api_key: str = ""
    api_base: str | None = None
    request_timeout: float | None = None  # None: wait for the provider indefinitely


class ProvidersConfig(Base):
    """Configuration for LLM providers."""

    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)


class ExecToolConfig(Base):
    """Shell exec tool configuration."""

    timeout: int = 120
    max_output_bytes: int = 1024 * 1024
    deny_patterns: list[str] = Field(default_factory=list)


class ToolsConfig(Base):
    """Tools configuration."""

    exec: ExecToolConfig = Field(default_factory=ExecToolConfig)
    restrict_to_workspace: bool = False  # If true, restrict file and shell access to workspace


class StorageConfig(Base):
    """Where conversation threads are persisted."""

    threads_dir: str = "~/.picobot/threads"
    max_pending: int | None = None  # None: the mailbox is unbounded


class Config(BaseSettings):
    """Root configuration for picobot."""

    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    allow_from: list[str] = Field(default_factory=list)  # Allowed sender ids, empty = everyone

    model_config = SettingsConfigDict(
        env_prefix="PICOBOT_",
        env_nested_delimiter="__",
    )

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        return Path(self.agents.defaults.workspace).expanduser()

    @property
    def threads_path(self) -> Path:
        """Get expanded threads directory."""
        return Path(self.storage.threads_dir).expanduser()
