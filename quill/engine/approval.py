"""Approval gate: a one-shot rendezvous between a pipeline and a decision.

The pipeline awaits ``wait_for_decision()``; whoever holds the gate (a
button in the approval modal, a keyboard shortcut, an auto-approve policy)
calls ``resolve``. Only the first resolution counts: later calls are no-ops
that return False, since double clicks are expected.

The gate has no timeout of its own. ``wait_with_timeout`` layers one on top
and resolves the gate with a default when the timer fires.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from .models import Decision

if TYPE_CHECKING:
    from quill.adapters.permission_store import PermissionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApprovalGate(Generic[T]):
    """Single-resolution future. Create one per decision; never reuse."""

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._future: asyncio.Future[T] | None = None
        self._resolved = False
        self._value: T | None = None

    def __repr__(self) -> str:
        state = f"resolved={self._value!r}" if self._resolved else "pending"
        return f"ApprovalGate({self.label!r}, {state})"

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def value(self) -> T | None:
        return self._value

    def resolve(self, value: T) -> bool:
        """Settle the gate. Returns False if it was already settled."""
        if self._resolved:
            logger.debug(
                "Gate %s already resolved with %r; ignoring %r",
                self.label, self._value, value,
            )
            return False
        self._resolved = True
        self._value = value
        if self._future is not None and not self._future.done():
            self._future.set_result(value)
        logger.debug("Gate %s resolved with %r", self.label, value)
        return True

    async def wait_for_decision(self) -> T:
        """Suspend until resolved. Returns immediately if already resolved."""
        if self._resolved:
            return self._value  # type: ignore[return-value]
        if self._future is None or self._future.cancelled():
            # Created lazily so the gate can be built outside a running loop.
            self._future = asyncio.get_running_loop().create_future()
        return await self._future


class DecisionGate(ApprovalGate[Decision]):
    """Gate for apply/reject decisions."""

    def apply(self) -> bool:
        return self.resolve(Decision.APPLY)

    def reject(self) -> bool:
        return self.resolve(Decision.REJECT)


async def wait_with_timeout(
    gate: ApprovalGate[T],
    timeout_seconds: float | None,
    default: T,
) -> T:
    """Await ``gate``; after ``timeout_seconds`` resolve it with ``default``.

    A timeout of None or <= 0 waits indefinitely.
    """
    if timeout_seconds is None or timeout_seconds <= 0:
        return await gate.wait_for_decision()
    try:
        return await asyncio.wait_for(gate.wait_for_decision(), timeout_seconds)
    except asyncio.TimeoutError:
        if gate.resolve(default):
            logger.warning(
                "Gate %s timed out after %ss; using %r",
                gate.label, timeout_seconds, default,
            )
        return gate.value  # type: ignore[return-value]


class ApprovalPolicy:
    """Decides gates without asking when the tool is always allowed.

    ``default_decision`` resolves every gated tool (used by unattended
    replays); otherwise tools in ``always_allow`` or in the persisted
    permission store are applied automatically and everything else waits
    for a human.
    """

    def __init__(
        self,
        always_allow: set[str] | None = None,
        permission_store: PermissionStore | None = None,
        default_decision: Decision | None = None,
    ) -> None:
        self.always_allow = set(always_allow or ())
        self.permission_store = permission_store
        self.default_decision = default_decision

    def decide(self, tool_name: str) -> Decision | None:
        if self.default_decision is not None:
            return self.default_decision
        if tool_name in self.always_allow:
            return Decision.APPLY
        if self.permission_store is not None and tool_name in self.permission_store.load():
            return Decision.APPLY
        return None

    def allow_always(self, tool_name: str, *, scope: str = "session") -> None:
        """Stop asking for ``tool_name``. Scope: "session", "project" or "global"."""
        self.always_allow.add(tool_name)
        if self.permission_store is None or scope == "session":
            return
        if scope == "global":
            self.permission_store.add_global(tool_name)
        else:
            self.permission_store.add_project(tool_name)
