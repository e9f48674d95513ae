"""Live, per-user view of the groups collection."""

from __future__ import annotations

import enum
import logging
import threading
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from syncit.core.constants import GROUPS_COLLECTION
from syncit.errors import AppError
from syncit.group.models import format_group_data, is_visible_document

if TYPE_CHECKING:
    from syncit.backend import DocumentStore
    from syncit.core.types import DocumentRecord
    from syncit.group.models import Group


class ListenerState(str, enum.Enum):
    """Lifecycle of a ReconciliationListener."""

    UNINITIALIZED = "uninitialized"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    TORN_DOWN = "torn_down"


def build_visible_groups(
    records: Iterable[DocumentRecord],
    user_id: str,
    logger: Optional[logging.Logger] = None,
) -> list[Group]:
    """Scan every group document and keep the ones visible to the user.

    A group is visible when the user is its admin or appears anywhere in its
    member list, whatever their status. Documents that cannot be parsed are
    skipped.
    """
    groups = []
    for doc_id, data in records:
        if not is_visible_document(data, user_id):
            continue
        try:
            groups.append(format_group_data(doc_id, data))
        except (TypeError, ValueError, AttributeError) as e:
            if logger:
                logger.warning(f"Skipping malformed group document {doc_id}: {e}")
    return groups


class ReconciliationListener:
    """Keeps the current user's visible groups in sync with the backend.

    Every change notification covers the whole collection, and the visible
    list is rebuilt from scratch each time; nothing is diffed.
    """

    def __init__(
        self,
        store: DocumentStore,
        logger: Optional[logging.Logger] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        """Initialize the listener. No subscription is made until start()."""
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.lock = lock or threading.RLock()
        self.state = ListenerState.UNINITIALIZED
        self.user_id: Optional[str] = None
        self.groups: list[Group] = []
        self.loading = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._subscribers: list[Callable[[list[Group]], None]] = []

    def on_update(self, callback: Callable[[list[Group]], None]) -> None:
        """Register a callback receiving each rebuilt list."""
        self._subscribers.append(callback)

    def start(self, user_id: str) -> None:
        """Subscribe for ``user_id``, replacing any subscription for another user."""
        if not user_id:
            raise ValueError("A user id is required to subscribe.")
        if self._unsubscribe is not None:
            if self.user_id == user_id:
                return
            self.stop()

        self.logger.info(f"Setting up real-time listener for user: {user_id}")
        self.user_id = user_id
        self.state = ListenerState.SUBSCRIBING
        self.loading = True
        try:
            self._unsubscribe = self.store.subscribe_to_collection_changes(
                GROUPS_COLLECTION, self._handle_change, self._handle_error
            )
        except AppError:
            self.state = ListenerState.TORN_DOWN
            self.loading = False
            raise

    def stop(self) -> None:
        """Cancel the subscription and clear the cached view."""
        with self.lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            if self.state != ListenerState.UNINITIALIZED:
                self.state = ListenerState.TORN_DOWN
            self.groups = []
            self.loading = False
        if unsubscribe is not None:
            self.logger.info(f"Cleaning up groups listener for user: {self.user_id}")
            unsubscribe()

    def _handle_change(self, records: list[DocumentRecord]) -> None:
        """Rebuild the visible list from a full collection snapshot."""
        user_id = self.user_id
        if user_id is None or self.state == ListenerState.TORN_DOWN:
            return
        groups = build_visible_groups(records, user_id, self.logger)
        with self.lock:
            # stop() or a user switch may have happened during the rebuild
            if self.state == ListenerState.TORN_DOWN or self.user_id != user_id:
                return
            self.groups = groups
            self.state = ListenerState.ACTIVE
            self.loading = False
            for callback in list(self._subscribers):
                callback(groups)
        self.logger.info(f"Real-time update: Found {len(groups)} groups for user")

    def _handle_error(self, error: Exception) -> None:
        self.logger.error(f"Real-time listener error: {error}")
        self.loading = False
