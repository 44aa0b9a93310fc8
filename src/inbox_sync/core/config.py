"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Category, normalize_key


class AccountSettings(BaseModel):
    """Connection details for one monitored mailbox account."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Display name, also the account identity")
    host: str = Field(description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="Account username")
    password: str | None = Field(default=None, description="Account password")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")
    verify_certificates: bool = Field(
        default=True, description="Verify the server TLS certificate"
    )
    primary_folder: str = Field(
        default="INBOX", description="Folder watched for new mail after backfill"
    )

    @property
    def key(self) -> str:
        """Normalized account identity used in record keys."""
        return normalize_key(self.name)


class SyncSettings(BaseModel):
    """Settings controlling backfill, delta sync and reconnection cadence."""

    retention_days: int = Field(
        default=30, ge=0, description="Ignore messages older than this many days"
    )
    folder_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Pause between folders during backfill"
    )
    reconnect_backoff_seconds: float = Field(
        default=30.0, ge=0.0, description="Delay before reconnecting after an error"
    )
    keepalive_interval_seconds: float = Field(
        default=900.0, gt=0.0, description="Interval between NOOP keepalives"
    )
    idle_timeout_seconds: float = Field(
        default=300.0, gt=0.0, description="Maximum length of one IDLE wait"
    )
    ingest_concurrency: int = Field(
        default=4, ge=1, description="Messages processed concurrently per batch"
    )
    include_parent_folders: bool = Field(
        default=False, description="Sync folders that have children as well"
    )
    connect_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Socket timeout while connecting"
    )
    read_timeout_seconds: float = Field(
        default=120.0, gt=0.0, description="Socket timeout for commands other than IDLE"
    )


class NotificationSettings(BaseModel):
    """Outbound notification sinks and throttling."""

    webhook_url: str | None = Field(default=None, description="Generic webhook")
    slack_webhook_url: str | None = Field(
        default=None, description="Slack incoming webhook"
    )
    min_interval_ms: int = Field(
        default=1000, ge=0, description="Minimum delay between sends per sink"
    )
    timeout_seconds: float = Field(default=10.0, gt=0.0)
    actionable_category: Category = Field(
        default=Category.INTERESTED,
        description="Category that triggers a notification",
    )


class LlmSettings(BaseModel):
    """Settings for the optional model-based classifier."""

    enabled: bool = Field(
        default=False, description="Classify with the LLM before keyword rules"
    )
    base_url: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    model: str = Field(default="llama3.1:8b", description="Model identifier")
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./inbox_sync.db"), description="SQLite database path"
    )
    pool_size: int = Field(default=5, ge=1, description="Pooled connections")


class ApiSettings(BaseModel):
    """Settings for the read API."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3001)
    page_size: int = Field(default=100, ge=1, le=1000)


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    accounts: list[AccountSettings] = Field(default_factory=list)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("accounts", mode="before")
    @classmethod
    def _accounts_from_indexed_mapping(cls, value: Any) -> Any:
        """Accept ``{"1": {...}, "2": {...}}`` as produced by indexed env keys."""
        if isinstance(value, dict):
            return [value[index] for index in sorted(value, key=_index_sort_key)]
        return value


ENV_PREFIX = "INBOX_SYNC_"


def _index_sort_key(raw: str) -> tuple[int, str]:
    try:
        return int(raw), ""
    except (TypeError, ValueError):
        return 0, str(raw)


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AccountSettings",
    "ApiSettings",
    "AppSettings",
    "LlmSettings",
    "LoggingSettings",
    "NotificationSettings",
    "StorageSettings",
    "SyncSettings",
    "load_app_settings",
]
