"""Persistent storage for recording sessions."""

from .session_store import SessionStore

__all__ = ["SessionStore"]
