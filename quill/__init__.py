"""Quill: an approval-gated note-taking agent core."""

__version__ = "0.1.0"
