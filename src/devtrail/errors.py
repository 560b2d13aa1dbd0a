"""Exception hierarchy.

Two families matter for control flow:

- :class:`CollaboratorError` is local. A failed or malformed call to a search, scoring,
  analysis or synthesis collaborator is recorded as an ``error`` event by the smallest
  enclosing unit (one search request, one judge batch, one work item) and treated as
  "no new information".
- :class:`BackendError` is fatal. The event log, blob store and thread datastore are the
  coordination substrate; when they are unavailable the session is aborted.
"""

from __future__ import annotations


class DevtrailError(Exception):
    """Base class for all devtrail errors."""


class CollaboratorError(DevtrailError):
    """An external collaborator call failed or returned unusable output."""


class BackendError(DevtrailError):
    """The event log, blob store or history datastore is unavailable."""


class BlobNotFoundError(DevtrailError):
    """A blob key could not be resolved."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Blob not found: {key}")
        self.key = key


class SessionNotFoundError(DevtrailError):
    """No session with this id is known to the explorer or its log backend."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
