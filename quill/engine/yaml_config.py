"""YAML configuration loader.

Loads a single YAML file on top of the built-in defaults. When no file is
given, ``EngineConfig.from_env()`` is used instead.

Example YAML:
    engine:
      vault_root: ~/notes
      approval_timeout_seconds: 600
      serialize_path_mutations: true
      log_level: DEBUG

    tools:
      enabled: [write, editFile, list, readNoteByPath, search]
      auto_approve: [editFile]

    list:
      limit: 300
      ignore: [.obsidian, .trash, archive*]

    artifacts:
      root: quill
      reserved_names: [summarize]

    web_search:
      enabled: true
      api_key_env: EXA_API_KEY
      num_results: 5
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import EngineConfig, WebSearchConfig

logger = logging.getLogger(__name__)


@dataclass
class QuillConfig:
    """Complete parsed YAML configuration."""
    engine: EngineConfig
    source: Path | None = None
    sections: list[str] = field(default_factory=list)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        logger.warning("Ignoring YAML section %r: expected a mapping", name)
        return {}
    return value


def _resolve_dir(value: str | None, base: Path) -> str | None:
    if not value:
        return value
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return str(path)


def _parse_web_search(raw: dict[str, Any]) -> WebSearchConfig:
    defaults = WebSearchConfig()
    api_key = str(raw.get("api_key", "") or "")
    api_key_env = raw.get("api_key_env")
    if not api_key and api_key_env:
        api_key = os.getenv(str(api_key_env), "")
        if not api_key:
            logger.warning("web_search.api_key_env %s is not set", api_key_env)
    return WebSearchConfig(
        enabled=bool(raw.get("enabled", defaults.enabled)),
        api_key=api_key,
        api_url=str(raw.get("api_url", defaults.api_url)),
        num_results=int(raw.get("num_results", defaults.num_results)),
        max_characters=int(raw.get("max_characters", defaults.max_characters)),
        livecrawl=str(raw.get("livecrawl", defaults.livecrawl)),
        timeout_seconds=float(raw.get("timeout_seconds", defaults.timeout_seconds)),
    )


def load_yaml_config(path: str | Path) -> QuillConfig:
    """Load and parse a YAML config file.

    Relative ``vault_root`` and ``snapshot_dir`` values are resolved against
    the directory containing the file.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists()
    )
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute()
        )
        raise
    except yaml.YAMLError as exc:
        logger.error(
            "load_yaml_config: YAML parse error in %s: %s",
            path, exc
        )
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s, sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    base = path.parent
    engine_raw = _section(raw, "engine")
    tools_raw = _section(raw, "tools")
    list_raw = _section(raw, "list")
    artifacts_raw = _section(raw, "artifacts")

    defaults = EngineConfig()
    engine = EngineConfig(
        vault_root=_resolve_dir(
            engine_raw.get("vault_root", defaults.vault_root), base
        ) or defaults.vault_root,
        snapshot_dir=_resolve_dir(engine_raw.get("snapshot_dir"), base),
        approval_timeout_seconds=float(engine_raw.get(
            "approval_timeout_seconds", defaults.approval_timeout_seconds
        )),
        question_timeout_seconds=float(engine_raw.get(
            "question_timeout_seconds", defaults.question_timeout_seconds
        )),
        max_transcript_messages=int(engine_raw.get(
            "max_transcript_messages", defaults.max_transcript_messages
        )),
        serialize_path_mutations=bool(engine_raw.get(
            "serialize_path_mutations", defaults.serialize_path_mutations
        )),
        list_limit=int(list_raw.get("limit", defaults.list_limit)),
        list_ignore=list(list_raw.get("ignore", defaults.list_ignore) or []),
        artifact_root=str(artifacts_raw.get("root", defaults.artifact_root)),
        reserved_artifact_names=list(
            artifacts_raw.get("reserved_names", defaults.reserved_artifact_names) or []
        ),
        auto_approve_tools=list(tools_raw.get("auto_approve", []) or []),
        enabled_tools=list(tools_raw.get("enabled", []) or []),
        web_search=_parse_web_search(_section(raw, "web_search")),
        log_level=str(engine_raw.get("log_level", defaults.log_level)),
    )
    return QuillConfig(engine=engine, source=path, sections=top_sections)
