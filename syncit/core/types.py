"""Core data types for the syncit application."""

from typing import Any, Dict, List, Optional, Tuple, TypedDict  # noqa: UP035

# A document as delivered by the store: (document id, document body).
DocumentRecord = Tuple[str, Dict[str, Any]]  # noqa: UP006


class FirestoreDocument(TypedDict, total=False):
    """Generic Firestore document structure."""

    id: str
    createdAt: str


class APIResponse(TypedDict):
    """Generic API response structure."""

    status: str
    message: str
    data: Optional[Dict[str, Any]]  # noqa: UP006


class SerializedMember(TypedDict, total=False):
    """A member as stored inside a group document."""

    id: str
    name: str
    initials: str
    phone: str
    role: str
    joinedAt: str
    isOnline: bool
    status: str


class SerializedEvent(TypedDict, total=False):
    """An event as stored inside a group document."""

    id: int
    date: str
    time: str
    notes: str
    type: str
    user: str
    userInitials: str
    createdBy: str
    createdAt: str
    isNewForUser: Dict[str, bool]  # noqa: UP006


class SerializedGroup(FirestoreDocument, total=False):
    """A group document in Firestore."""

    name: str
    description: str
    admin: str
    members: List[SerializedMember]  # noqa: UP006
    events: List[SerializedEvent]  # noqa: UP006
    silentNotifications: bool
    creatorBlocked: bool
