"""Adapters package - Bridge between the engine and its outer surfaces.

Stream delta parsing for provider output and the persisted tool
permission store.
"""
from __future__ import annotations

__all__ = [
    "PermissionStore",
    "StreamDelta",
    "delta_to_dict",
    "dict_to_delta",
]

from quill.adapters.events import StreamDelta, delta_to_dict, dict_to_delta
from quill.adapters.permission_store import PermissionStore
