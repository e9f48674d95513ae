"""Common utilities for tests."""

from __future__ import annotations

import unittest
from typing import Any, Optional
from unittest.mock import MagicMock, patch

from google.api_core import exceptions as google_exceptions
from mockfirestore import MockFirestore
from mockfirestore.document import DocumentReference as MockDocumentReference

from syncit import create_app
from syncit.backend import DocumentStore
from syncit.group.services import GroupSession, MembershipStore

JOINED_AT = "2024-03-01T09:30:00+00:00"

USERS = {"A": "Alice Admin", "B": "Bob Brown", "C": "Cleo Cruz", "D": "Dan Diaz"}


def _create_document(
    self: MockDocumentReference, document_data: dict[str, Any]
) -> None:
    """Firestore's create(): write the document only if it does not exist yet."""
    if self.get().exists:
        raise google_exceptions.AlreadyExists(f"Document already exists: {self.id}")
    self.set(document_data)


# MockFirestore only offers set() on document references.
if not hasattr(MockDocumentReference, "create"):
    MockDocumentReference.create = _create_document


def member_doc(
    member_id: str,
    status: str = "accepted",
    role: str = "member",
    name: Optional[str] = None,
) -> dict[str, Any]:
    """A member entry as stored inside a group document."""
    name = name or f"User {member_id}"
    return {
        "id": member_id,
        "name": name,
        "initials": member_id[:2].upper(),
        "phone": "",
        "role": role,
        "joinedAt": JOINED_AT,
        "isOnline": False,
        "status": status,
    }


def event_doc(
    event_id: int,
    created_by: str,
    new_for: Optional[dict[str, bool]] = None,
    date: str = "2024-03-10",
) -> dict[str, Any]:
    """An event entry as stored inside a group document."""
    return {
        "id": event_id,
        "date": date,
        "time": "",
        "notes": "",
        "type": "morning",
        "user": f"User {created_by}",
        "userInitials": created_by[:2].upper(),
        "createdBy": created_by,
        "createdAt": JOINED_AT,
        "isNewForUser": dict(new_for or {}),
    }


def group_doc(
    admin: str,
    members: Optional[list[dict[str, Any]]] = None,
    events: Optional[list[dict[str, Any]]] = None,
    name: str = "Weekend Plans",
    **extra: Any,
) -> dict[str, Any]:
    """A group document body. The admin is listed as an accepted admin member."""
    if members is None:
        members = [member_doc(admin, role="admin")]
    data = {
        "name": name,
        "description": "",
        "admin": admin,
        "members": members,
        "events": events or [],
        "createdAt": JOINED_AT,
        "silentNotifications": False,
        "creatorBlocked": False,
    }
    data.update(extra)
    return data


def seed_group(db: Any, group_id: int, data: dict[str, Any]) -> None:
    """Write a group document straight into a MockFirestore client."""
    db.collection("groups").document(str(group_id)).set(data)


def stored_group(db: Any, group_id: int) -> dict[str, Any]:
    """Read a group document back from a MockFirestore client."""
    return db.collection("groups").document(str(group_id)).get().to_dict()


def make_session(
    db: Any, user_id: str, notifications: Any = None, live: bool = False
) -> GroupSession:
    """Open a GroupSession over a MockFirestore client."""
    membership = MembershipStore(DocumentStore(db), notifications=notifications)
    return GroupSession(membership, user_id, live=live).open()


def failing_store(error: Exception, db: Any) -> MagicMock:
    """A DocumentStore whose writes raise ``error`` and whose reads hit ``db``."""
    real = DocumentStore(db)
    store = MagicMock(spec=DocumentStore)
    store.get.side_effect = real.get
    store.exists.side_effect = real.exists
    store.list.side_effect = real.list
    store.create.side_effect = error
    store.update.side_effect = error
    store.delete.side_effect = error
    return store


class AppTestCase(unittest.TestCase):
    """Runs the Flask app against MockFirestore with the Firebase SDK patched."""

    def setUp(self) -> None:
        """Set up a test client and a mock Firebase environment."""
        self.db = MockFirestore()
        self.mock_firestore_service = MagicMock()
        self.mock_firestore_service.client.return_value = self.db

        patchers = {
            "init_app": patch("firebase_admin.initialize_app"),
            "firestore_app": patch("syncit.firestore", new=self.mock_firestore_service),
            "firestore_auth": patch(
                "syncit.auth.routes.firestore", new=self.mock_firestore_service
            ),
            "firestore_group": patch(
                "syncit.group.routes.firestore", new=self.mock_firestore_service
            ),
            "firestore_user": patch(
                "syncit.user.routes.firestore", new=self.mock_firestore_service
            ),
            "verify_id_token": patch("firebase_admin.auth.verify_id_token"),
        }
        self.mocks = {name: p.start() for name, p in patchers.items()}
        for p in patchers.values():
            self.addCleanup(p.stop)

        self.app = create_app(
            {
                "TESTING": True,
                "WTF_CSRF_ENABLED": False,
                "NOTIFICATIONS_ENABLED": False,
                "LIVE_UPDATES": False,
            }
        )
        self.client = self.app.test_client()

        for user_id, name in USERS.items():
            self.db.collection("users").document(user_id).set(
                {"name": name, "email": f"{user_id.lower()}@example.com"}
            )

    def login(self, user_id: str) -> None:
        with self.client.session_transaction() as sess:
            sess["user_id"] = user_id
