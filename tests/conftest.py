from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from quill.engine.config import EngineConfig
from quill.engine.context import AgentContext
from quill.shared.models.message import ToolMessage


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def make_context(vault: Path, tmp_path: Path):
    """Build an AgentContext over the temp vault; kwargs override EngineConfig."""

    def _make(store=None, **overrides) -> AgentContext:
        overrides.setdefault("snapshot_dir", str(tmp_path / "snapshots"))
        config = EngineConfig(vault_root=str(vault), **overrides)
        return AgentContext.create(config, store=store)

    return _make


@pytest.fixture
def wait_for_gate():
    """Poll the transcript until the tool call is awaiting a decision."""

    async def _wait(ctx: AgentContext, tool_call_id: str, timeout: float = 2.0) -> ToolMessage:
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            message = ctx.transcript.find_by_tool_call_id(tool_call_id)
            if isinstance(message, ToolMessage) and message.awaiting_decision:
                return message
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(f"{tool_call_id} never reached its approval gate")
            await asyncio.sleep(0.005)

    return _wait
