"""Document store adapter over a Firestore client."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

from google.api_core import exceptions as google_exceptions

from syncit.errors import (
    NotFoundError,
    PermissionDeniedError,
    TransientNetworkError,
    WriteError,
)

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

    from syncit.core.types import DocumentRecord

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.Aborted,
    google_exceptions.RetryError,
    ConnectionError,
    TimeoutError,
)

PERMISSION_ERRORS = (
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
)


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Re-raise backend exceptions as application errors."""
    try:
        yield
    except google_exceptions.NotFound as e:
        raise NotFoundError(f"Not found while trying to {action}.") from e
    except PERMISSION_ERRORS as e:
        raise PermissionDeniedError(f"Access denied while trying to {action}.") from e
    except TRANSIENT_ERRORS as e:
        raise TransientNetworkError(
            f"Service temporarily unavailable while trying to {action}."
        ) from e
    except google_exceptions.GoogleAPIError as e:
        raise WriteError(f"Failed to {action}: {e}") from e


class DocumentStore:
    """The subset of the backend the group core consumes.

    Every method raises the application error taxonomy instead of the
    client library's exceptions.
    """

    def __init__(self, db: Client | Any) -> None:
        """Wrap a Firestore client."""
        self.db = db

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self.db.collection(collection).document(str(doc_id))

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Fetch one document body, or None if it does not exist."""
        with translate_errors(f"read {collection}/{doc_id}"):
            snapshot = self._ref(collection, doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def exists(self, collection: str, doc_id: str) -> bool:
        """Whether the document exists."""
        return self.get(collection, doc_id) is not None

    def list(self, collection: str) -> list[DocumentRecord]:
        """Fetch every document of a collection."""
        with translate_errors(f"read {collection}"):
            snapshots = list(self.db.collection(collection).stream())
        return [(doc.id, doc.to_dict() or {}) for doc in snapshots if doc.exists]

    def create(self, collection: str, doc_id: str, document: dict[str, Any]) -> None:
        """Persist a new document.

        Raises:
            WriteError: If a document with this id already exists.
        """
        with translate_errors(f"create {collection}/{doc_id}"):
            self._ref(collection, doc_id).create(document)

    def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            NotFoundError: If the document does not exist.
        """
        ref = self._ref(collection, doc_id)
        with translate_errors(f"update {collection}/{doc_id}"):
            if not ref.get().exists:
                raise NotFoundError(f"{collection}/{doc_id} does not exist.")
            ref.update(partial)

    def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document."""
        with translate_errors(f"delete {collection}/{doc_id}"):
            self._ref(collection, doc_id).delete()

    def subscribe_to_collection_changes(
        self,
        collection: str,
        on_change: Callable[[list[DocumentRecord]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Callable[[], None]:
        """Call ``on_change`` with the whole collection on every change.

        Returns a callable that cancels the subscription.
        """

        def on_snapshot(docs: list[Any], changes: Any, read_time: Any) -> None:
            try:
                on_change([(doc.id, doc.to_dict() or {}) for doc in docs])
            except Exception as e:
                if on_error is None:
                    raise
                on_error(e)

        with translate_errors(f"subscribe to {collection}"):
            watch = self.db.collection(collection).on_snapshot(on_snapshot)
        return watch.unsubscribe
