"""Approval modal: shows a pending tool call preview and asks apply/reject."""

from __future__ import annotations

import logging
from typing import Callable

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Static

from quill.shared.formatters.tool_call import format_tool_call, render_expanded_rich
from quill.shared.models.message import ToolMessage

logger = logging.getLogger(__name__)


class ApprovalScreen(ModalScreen[str]):
    """Modal dialog for a gated tool call.

    Returns one of: "apply", "apply_always", "reject"
    """

    CSS_PATH = "../styles/modal.tcss"

    BINDINGS = [
        Binding("y", "choose('apply')", "Apply"),
        Binding("n", "choose('reject')", "Reject"),
        Binding("escape", "choose('reject')", "Reject", show=False),
    ]

    def __init__(self, message: ToolMessage, **kwargs) -> None:
        super().__init__(**kwargs)
        self.message = message

    def compose(self) -> ComposeResult:
        fmt = self.message.children or format_tool_call(self.message.tool_name, {})
        with Vertical(id="approval-dialog"):
            yield Static(
                "[b]Approve change?[/b]",
                id="approval-title",
            )
            yield Static(
                Text.from_markup(render_expanded_rich(fmt, "awaiting")),
                id="approval-details",
            )
            with Horizontal(id="approval-buttons"):
                yield Button("Apply", variant="success", id="btn-apply")
                yield Button(
                    "Always apply", variant="warning", id="btn-apply-always"
                )
                yield Button("Reject", variant="error", id="btn-reject")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        result_map = {
            "btn-apply": "apply",
            "btn-apply-always": "apply_always",
            "btn-reject": "reject",
        }
        self.dismiss(result_map.get(event.button.id, "reject"))

    def action_choose(self, result: str) -> None:
        self.dismiss(result)


def resolve_from_choice(
    message: ToolMessage,
    choice: str | None,
    allow_always: Callable[[str], None] | None = None,
) -> bool:
    """Hand the modal's result to the message's gate.

    Anything but an apply choice rejects. Returns False when the gate was
    already settled (for example by a timeout).
    """
    on_apply, on_reject = message.decision_callbacks()
    if choice == "apply_always" and allow_always is not None:
        allow_always(message.tool_name)
    if choice in ("apply", "apply_always"):
        return on_apply()
    return on_reject()


def request_decision(
    app: App,
    message: ToolMessage,
    allow_always: Callable[[str], None] | None = None,
) -> None:
    """Push an ApprovalScreen for ``message`` and resolve its gate on dismiss."""
    if not message.awaiting_decision:
        logger.debug("Tool call %s is not awaiting a decision", message.tool_call_id)
        return

    def on_dismiss(result: str | None) -> None:
        resolve_from_choice(message, result, allow_always)

    app.push_screen(ApprovalScreen(message), callback=on_dismiss)
