from __future__ import annotations

import asyncio

import pytest

from quill.adapters.permission_store import PermissionStore
from quill.engine.approval import (
    ApprovalGate,
    ApprovalPolicy,
    DecisionGate,
    wait_with_timeout,
)
from quill.engine.models import Decision


@pytest.mark.asyncio
async def test_resolve_wakes_waiter() -> None:
    gate = DecisionGate(label="call-1")
    waiter = asyncio.create_task(gate.wait_for_decision())
    await asyncio.sleep(0)
    assert not waiter.done()

    assert gate.apply() is True
    assert await waiter is Decision.APPLY


@pytest.mark.asyncio
async def test_resolve_before_wait_returns_immediately() -> None:
    gate = DecisionGate()
    gate.reject()
    assert await gate.wait_for_decision() is Decision.REJECT


@pytest.mark.asyncio
async def test_only_first_resolution_counts() -> None:
    gate = DecisionGate()
    assert gate.apply() is True
    assert gate.reject() is False
    assert gate.apply() is False
    assert await gate.wait_for_decision() is Decision.APPLY


def test_gate_can_be_resolved_outside_a_loop() -> None:
    gate: ApprovalGate[str] = ApprovalGate(label="q")
    assert gate.resolve("yes") is True
    assert gate.resolved
    assert gate.value == "yes"


@pytest.mark.asyncio
async def test_timeout_resolves_with_default() -> None:
    gate = DecisionGate(label="slow")
    decision = await wait_with_timeout(gate, 0.01, Decision.REJECT)
    assert decision is Decision.REJECT
    assert gate.resolved
    # A late click cannot override the timeout.
    assert gate.apply() is False


@pytest.mark.asyncio
async def test_zero_timeout_waits_for_resolution() -> None:
    gate = DecisionGate()
    waiter = asyncio.create_task(wait_with_timeout(gate, 0, Decision.REJECT))
    await asyncio.sleep(0.02)
    assert not waiter.done()
    gate.apply()
    assert await waiter is Decision.APPLY


@pytest.mark.asyncio
async def test_decision_before_timeout_wins() -> None:
    gate = DecisionGate()
    waiter = asyncio.create_task(wait_with_timeout(gate, 5, Decision.REJECT))
    await asyncio.sleep(0)
    gate.apply()
    assert await waiter is Decision.APPLY


def test_policy_without_rules_asks() -> None:
    assert ApprovalPolicy().decide("write") is None


def test_policy_default_decision_overrides_everything() -> None:
    policy = ApprovalPolicy(default_decision=Decision.REJECT, always_allow={"write"})
    assert policy.decide("write") is Decision.REJECT


def test_policy_always_allow() -> None:
    policy = ApprovalPolicy(always_allow={"editFile"})
    assert policy.decide("editFile") is Decision.APPLY
    assert policy.decide("write") is None


def test_policy_allow_always_persists_per_scope(tmp_path) -> None:
    store = PermissionStore(project_dir=tmp_path / "vault", global_dir=tmp_path / "home")
    policy = ApprovalPolicy(permission_store=store)

    policy.allow_always("write", scope="session")
    assert store.load() == set()

    policy.allow_always("editFile", scope="project")
    policy.allow_always("createArtifact", scope="global")
    assert store.load() == {"editFile", "createArtifact"}

    fresh = ApprovalPolicy(permission_store=store)
    assert fresh.decide("editFile") is Decision.APPLY
    assert fresh.decide("write") is None
