"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via QUILL_* env vars, or
with a YAML file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# Optional async callback for real-time event observation.
# Signature: async def callback(event: dict[str, Any]) -> None
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]

DEFAULT_LIST_IGNORE = [".obsidian", ".trash", ".git", ".quill"]

# Names used by built-in commands and skills.
DEFAULT_RESERVED_ARTIFACT_NAMES = [
    "create-command",
    "create-skill",
    "pdf-extract",
    "summarize",
]

_TRUE_VALUES = {"1", "true", "yes", "on"}


async def fire_event(
    callback: EventCallback | None,
    event: dict[str, Any],
) -> None:
    """Fire an event callback if set. Callback errors are logged, never raised."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception:
        # Never let callback errors break the engine
        logger.debug("Event callback failed for %s", event.get("event"), exc_info=True)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class WebSearchConfig:
    """Exa web search settings."""

    enabled: bool = False
    api_key: str = field(default="", repr=False)
    api_url: str = "https://api.exa.ai/search"
    num_results: int = 10
    max_characters: int = 3000
    livecrawl: str = "fallback"
    timeout_seconds: float = 30.0


@dataclass
class EngineConfig:
    """Tool orchestration engine configuration."""

    # Vault the tools operate on.
    vault_root: str = "."
    # Where snapshot records live. Defaults to <vault>/.quill/snapshots.
    snapshot_dir: str | None = None

    # Max wait for an apply/reject decision; expiry counts as reject.
    # Set to 0 (or a negative value) to wait indefinitely.
    approval_timeout_seconds: float = 0.0
    # Max wait for an answer to askQuestion.
    # Set to 0 (or a negative value) to wait indefinitely.
    question_timeout_seconds: float = 0.0

    # Transcript bound; older messages are evicted first.
    max_transcript_messages: int = 100

    # Wrap snapshot-then-mutate in a per-path lock. Off by default:
    # concurrent pipelines on one path each snapshot independently.
    serialize_path_mutations: bool = False

    # list tool
    list_limit: int = 200
    list_ignore: list[str] = field(default_factory=lambda: list(DEFAULT_LIST_IGNORE))

    # createArtifact writes <artifact_root>/commands and <artifact_root>/skills.
    artifact_root: str = "quill"
    reserved_artifact_names: list[str] = field(
        default_factory=lambda: list(DEFAULT_RESERVED_ARTIFACT_NAMES)
    )

    # Gated tools applied without asking.
    auto_approve_tools: list[str] = field(default_factory=list)
    # Built-in tools to register; empty means all.
    enabled_tools: list[str] = field(default_factory=list)

    web_search: WebSearchConfig = field(default_factory=WebSearchConfig)

    # Logging
    log_level: str = "INFO"

    # Optional async callback for real-time event observation.
    # Receives dicts like {"event": "tool_finalized", "tool_call_id": "...", ...}
    event_callback: EventCallback | None = field(default=None, repr=False)

    def resolved_snapshot_dir(self) -> Path:
        if self.snapshot_dir:
            return Path(self.snapshot_dir).expanduser()
        return Path(self.vault_root).expanduser() / ".quill" / "snapshots"

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from QUILL_* environment variables."""
        quill_vars = {
            k: v for k, v in os.environ.items() if k.startswith("QUILL_")
        }
        if quill_vars:
            logger.info(
                "EngineConfig.from_env: QUILL_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(quill_vars.items())),
            )
        else:
            logger.debug("EngineConfig.from_env: no QUILL_* env vars set, using defaults")

        api_key = os.getenv("EXA_API_KEY", "")
        web_search = WebSearchConfig(
            enabled=_env_bool("QUILL_WEB_SEARCH_ENABLED", bool(api_key)),
            api_key=api_key,
            num_results=int(os.getenv(
                "QUILL_WEB_SEARCH_NUM_RESULTS", str(WebSearchConfig.num_results)
            )),
        )

        return cls(
            vault_root=os.getenv("QUILL_VAULT_ROOT", cls.vault_root),
            snapshot_dir=os.getenv("QUILL_SNAPSHOT_DIR") or None,
            approval_timeout_seconds=float(os.getenv(
                "QUILL_APPROVAL_TIMEOUT", str(cls.approval_timeout_seconds)
            )),
            question_timeout_seconds=float(os.getenv(
                "QUILL_QUESTION_TIMEOUT", str(cls.question_timeout_seconds)
            )),
            max_transcript_messages=int(os.getenv(
                "QUILL_MAX_TRANSCRIPT_MESSAGES", str(cls.max_transcript_messages)
            )),
            serialize_path_mutations=_env_bool(
                "QUILL_SERIALIZE_PATH_MUTATIONS", cls.serialize_path_mutations
            ),
            list_limit=int(os.getenv("QUILL_LIST_LIMIT", str(cls.list_limit))),
            auto_approve_tools=_env_list("QUILL_AUTO_APPROVE_TOOLS", []),
            web_search=web_search,
            log_level=os.getenv("QUILL_LOG_LEVEL", cls.log_level),
        )
