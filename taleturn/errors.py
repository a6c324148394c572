"""
Exceptions raised across the persistence seam.

The engine itself never raises for an illegal action; it returns an
ActionResult failure. These are for the store, which the gateway
translates into rejections.
"""


class StoreError(Exception):
    """Base class for persistence errors."""


class SessionNotFound(StoreError, LookupError):
    """No session with the given id or join code."""

    def __init__(self, key: str):
        super().__init__(f"Session {key} not found")
        self.key = key


class ConcurrencyConflict(StoreError):
    """The stored snapshot changed between load and commit."""

    def __init__(self, session_id: str, expected_revision: int, actual_revision: int):
        super().__init__(
            f"Session {session_id} is at revision {actual_revision}, "
            f"expected {expected_revision}"
        )
        self.session_id = session_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class DuplicateJoinCode(StoreError):
    """A session with the same join code already exists."""
