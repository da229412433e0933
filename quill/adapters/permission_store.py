"""Persistent storage for always-allowed tools.

Stores tool names at two levels:
- Global: ~/.quill/allowed_tools.json (applies to every vault)
- Vault: <vault>/.quill/allowed_tools.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from quill.shared.services.durable_write import atomic_write_json

logger = logging.getLogger(__name__)

GLOBAL_DIR = Path.home() / ".quill"
FILENAME = "allowed_tools.json"


class PermissionStore:
    """Load and save always-allow decisions for gated tools."""

    def __init__(
        self,
        project_dir: Path | None = None,
        global_dir: Path | None = None,
    ) -> None:
        self._global_path = (global_dir or GLOBAL_DIR) / FILENAME
        self._project_path = project_dir / FILENAME if project_dir else None

    def load(self) -> set[str]:
        """Load all allowed tools (global + vault merged)."""
        allowed = self._load_file(self._global_path)
        if self._project_path:
            allowed |= self._load_file(self._project_path)
        return allowed

    def add_project(self, tool_name: str) -> None:
        """Add a tool to the vault-level allow list."""
        if not self._project_path:
            # No vault context, fall back to global
            self.add_global(tool_name)
            return
        self._add_to_file(self._project_path, tool_name)

    def add_global(self, tool_name: str) -> None:
        self._add_to_file(self._global_path, tool_name)

    def remove(self, tool_name: str) -> None:
        """Forget a tool at both levels."""
        for path in (self._global_path, self._project_path):
            if path is None or not path.exists():
                continue
            existing = self._load_file(path)
            if tool_name in existing:
                existing.discard(tool_name)
                self._save_file(path, existing)

    @staticmethod
    def _load_file(path: Path) -> set[str]:
        """Load a set of tool names from a JSON file."""
        if not path.exists():
            return set()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, list):
                return {str(item) for item in data}
        except (json.JSONDecodeError, OSError):
            logger.warning("Failed to load %s", path)
        return set()

    @staticmethod
    def _save_file(path: Path, names: set[str]) -> None:
        try:
            atomic_write_json(path, sorted(names))
        except OSError:
            logger.warning("Failed to write %s", path)

    @classmethod
    def _add_to_file(cls, path: Path, tool_name: str) -> None:
        """Add a tool name to a JSON file (create if needed)."""
        existing = cls._load_file(path)
        existing.add(tool_name)
        cls._save_file(path, existing)
