"""Agent context: the per-session collaborators, built once and passed down.

Every component receives the context explicitly instead of reaching for
process-wide singletons.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from quill.adapters.permission_store import PermissionStore
from quill.engine.approval import ApprovalPolicy
from quill.engine.config import EngineConfig, fire_event
from quill.engine.tools.base import ToolRegistry
from quill.shared.models.transcript import Transcript
from quill.shared.services.snapshot import SnapshotStore
from quill.shared.services.vault import LocalVaultStore, ResourceStore

logger = logging.getLogger(__name__)


@dataclass
class AgentContext:
    config: EngineConfig
    store: ResourceStore
    snapshots: SnapshotStore
    transcript: Transcript
    approval_policy: ApprovalPolicy
    tools: ToolRegistry = field(default_factory=ToolRegistry)

    @classmethod
    def create(
        cls,
        config: EngineConfig | None = None,
        *,
        store: ResourceStore | None = None,
        tools: ToolRegistry | None = None,
        approval_policy: ApprovalPolicy | None = None,
        permission_store: PermissionStore | None = None,
    ) -> AgentContext:
        """Wire the default collaborators for ``config``.

        Unless given, the vault is a ``LocalVaultStore`` at
        ``config.vault_root`` and the tools are the enabled built-ins.
        """
        config = config or EngineConfig.from_env()
        if store is None:
            store = LocalVaultStore(Path(config.vault_root))
        if approval_policy is None:
            approval_policy = ApprovalPolicy(
                always_allow=set(config.auto_approve_tools),
                permission_store=permission_store,
            )
        if tools is None:
            from quill.engine.tools import build_default_tools

            tools = build_default_tools(config)

        context = cls(
            config=config,
            store=store,
            snapshots=SnapshotStore(store, config.resolved_snapshot_dir()),
            transcript=Transcript(max_messages=config.max_transcript_messages),
            approval_policy=approval_policy,
            tools=tools,
        )
        logger.info(
            "Agent context ready: vault=%s snapshots=%s tools=%s",
            config.vault_root,
            context.snapshots.snapshot_dir,
            ", ".join(tools.names()),
        )
        return context

    @property
    def vault_root(self) -> str:
        root = getattr(self.store, "root", None)
        return str(root) if root is not None else self.config.vault_root

    def validation_context(self) -> dict[str, Any]:
        """Context handed to pydantic validators (path normalization needs the root)."""
        return {"vault_root": self.vault_root}

    async def emit(self, event: dict[str, Any]) -> None:
        await fire_event(self.config.event_callback, event)
