"""askQuestion: ask the user and wait for the answer."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from quill.engine.approval import ApprovalGate, wait_with_timeout
from quill.engine.errors import ToolExecutionError
from quill.engine.tools.base import BaseTool
from quill.shared.models.message import QuestionMessage, ToolMessage

if TYPE_CHECKING:
    from quill.engine.context import AgentContext

logger = logging.getLogger(__name__)

MAX_OPTIONS = 4


class QuestionInput(BaseModel):
    question: str = Field(min_length=1, description="The question to ask the user.")
    options: list[str] = Field(
        default_factory=list,
        max_length=MAX_OPTIONS,
        description=f"Suggested answers, at most {MAX_OPTIONS}. The user may also type their own.",
    )


class QuestionTool(BaseTool):
    name = "askQuestion"
    description = (
        "Ask the user a question when a decision or missing detail blocks "
        "progress. Offer up to four options; the user's answer is returned."
    )
    input_model = QuestionInput
    message_class = QuestionMessage

    async def execute(
        self, ctx: AgentContext, params: QuestionInput, message: ToolMessage
    ) -> dict[str, Any]:
        if isinstance(message, QuestionMessage):
            message.question = params.question
            message.options = list(params.options)

        gate: ApprovalGate[str] = ApprovalGate(label=message.tool_call_id)
        message.attach_gate(gate)
        ctx.transcript.notify(message)

        # Sentinel distinguishes "timed out" from an empty answer.
        timed_out = object()
        answer = await wait_with_timeout(
            gate, ctx.config.question_timeout_seconds, timed_out
        )
        if answer is timed_out:
            raise ToolExecutionError(
                self.name,
                f"no answer within {ctx.config.question_timeout_seconds}s",
            )
        answer = str(answer)
        if isinstance(message, QuestionMessage):
            message.answer = answer
        logger.info("Question %s answered", message.tool_call_id)
        return {"question": params.question, "answer": answer}

    def summarize(self, result: dict[str, Any]) -> str:
        return result["answer"]
