"""Quill engine: approval-gated tool orchestration over a note vault."""
from .models import (
    Decision,
    DeltaKind,
    PipelineState,
    ToolCallRequest,
    ToolInvocationRecord,
    ToolOutcome,
)
from .config import EngineConfig, WebSearchConfig
from .approval import ApprovalGate, ApprovalPolicy, DecisionGate, wait_with_timeout
from .errors import (
    ConfigurationError,
    QuillError,
    ResourceIOError,
    ResourceNotFoundError,
    SnapshotNotFoundError,
    ToolExecutionError,
    ToolValidationError,
    UnknownToolError,
)

__all__ = [
    # Engine (lazy import to avoid circular deps)
    "AgentContext",
    "ConversationEngine",
    "StreamReconciler",
    "ToolInvocationPipeline",
    # Models
    "Decision",
    "DeltaKind",
    "PipelineState",
    "ToolCallRequest",
    "ToolInvocationRecord",
    "ToolOutcome",
    # Config
    "EngineConfig",
    "WebSearchConfig",
    # YAML config (lazy import)
    "QuillConfig",
    "load_yaml_config",
    # Approval
    "ApprovalGate",
    "ApprovalPolicy",
    "DecisionGate",
    "wait_with_timeout",
    # Errors
    "ConfigurationError",
    "QuillError",
    "ResourceIOError",
    "ResourceNotFoundError",
    "SnapshotNotFoundError",
    "ToolExecutionError",
    "ToolValidationError",
    "UnknownToolError",
]


def __getattr__(name: str):
    if name == "AgentContext":
        from .context import AgentContext
        return AgentContext
    if name == "ConversationEngine":
        from .engine import ConversationEngine
        return ConversationEngine
    if name == "StreamReconciler":
        from .reconciler import StreamReconciler
        return StreamReconciler
    if name == "ToolInvocationPipeline":
        from .pipeline import ToolInvocationPipeline
        return ToolInvocationPipeline
    if name == "QuillConfig":
        from .yaml_config import QuillConfig
        return QuillConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
