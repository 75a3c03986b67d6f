"""Exception hierarchy shared by the store, the tree editor and the chat service.

Four families are exposed to callers:

- :class:`NotFoundError`: a thread or message is absent or soft-deleted.
- :class:`InvalidStateError`: the request is well formed but illegal here
  (editing an assistant message, an empty thread name, ...).
- :class:`UpstreamFailureError`: the completion provider failed or timed out.
- :class:`StorageFailureError`: the persistence layer failed inside a
  transaction. The transaction has already been rolled back when this is raised.
"""

from __future__ import annotations


class RamusError(Exception):
    """Base class for all ramus errors."""


# ── Not found ──────────────────────────────────────────────────────────────────


class NotFoundError(RamusError):
    """Base class for lookups that found nothing."""


class ThreadNotFoundError(NotFoundError):
    """Raised when a thread_id does not exist or the thread is soft-deleted."""

    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Thread not found: {thread_id!r}")
        self.thread_id = thread_id


class MessageNotFoundError(NotFoundError):
    """Raised when a message_id does not exist in a live thread."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message not found: {message_id!r}")
        self.message_id = message_id


class ParentNotFoundError(NotFoundError):
    """Raised when a new message names a parent that is missing or lives in another thread."""

    def __init__(self, parent_id: str, thread_id: str) -> None:
        super().__init__(f"Parent message {parent_id!r} not found in thread {thread_id!r}")
        self.parent_id = parent_id
        self.thread_id = thread_id


# ── Invalid state ──────────────────────────────────────────────────────────────


class InvalidStateError(RamusError):
    """Raised when an operation is not legal for the current data."""


class InvalidRoleError(InvalidStateError):
    """Raised when an operation requires a different message role."""

    def __init__(self, message_id: str, role: str, expected: str) -> None:
        super().__init__(
            f"Message {message_id!r} has role {role!r}; this operation requires {expected!r}"
        )
        self.message_id = message_id
        self.role = role
        self.expected = expected


# ── Upstream / storage ─────────────────────────────────────────────────────────


class UpstreamFailureError(RamusError):
    """Raised when the completion provider fails or times out."""

    def __init__(self, message: str, *, retriable: bool = False, timed_out: bool = False) -> None:
        super().__init__(message)
        self.retriable = retriable
        self.timed_out = timed_out


class StorageFailureError(RamusError):
    """Raised when a database error aborts a transaction."""
