"""Exception hierarchy for the tool orchestration engine.

Each failure mode gets its own exception carrying the fields an error
message needs. The pipeline converts all of them into error messages;
none is meant to reach the model turn uncaught.
"""
from __future__ import annotations


class QuillError(Exception):
    """Base exception for all engine errors."""

    # Machine-readable category written into error payloads.
    error_type = "error"


class ToolValidationError(QuillError):
    """Tool input does not match the tool's schema."""

    error_type = "validation"

    def __init__(self, tool_name: str, reason: str, details: object = None):
        self.tool_name = tool_name
        self.reason = reason
        self.details = details
        super().__init__(f"Invalid input for tool '{tool_name}': {reason}")


class ConfigurationError(QuillError):
    """A feature is disabled or is missing required credentials."""

    error_type = "configuration"

    def __init__(self, feature: str, reason: str):
        self.feature = feature
        self.reason = reason
        super().__init__(f"{feature} is not configured: {reason}")


class ResourceIOError(QuillError):
    """A vault read, write or network call failed."""

    error_type = "io"

    def __init__(self, path: str, operation: str, reason: str):
        self.path = path
        self.operation = operation
        self.reason = reason
        super().__init__(f"Cannot {operation} '{path}': {reason}")


class ResourceNotFoundError(ResourceIOError):
    """The resource a call depends on does not exist."""

    error_type = "not_found"

    def __init__(self, path: str, operation: str = "read"):
        super().__init__(path, operation, "not found")


class SnapshotNotFoundError(QuillError):
    """No stored snapshot has the requested id."""

    error_type = "not_found"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class ToolExecutionError(QuillError):
    """A tool rejected a well-formed request on business-rule grounds."""

    error_type = "execution"

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool '{tool_name}' failed: {reason}")


class UnknownToolError(QuillError):
    """The model called a tool that is not registered."""

    error_type = "unknown_tool"

    def __init__(self, tool_name: str, available: list[str]):
        self.tool_name = tool_name
        self.available = available
        avail_str = ", ".join(available) if available else "none"
        super().__init__(
            f"Unknown tool '{tool_name}'. Available tools: {avail_str}"
        )
