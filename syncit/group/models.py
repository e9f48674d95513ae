"""Data models for the group blueprint."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Optional

from syncit.core.constants import (
    EVENT_TYPES,
    MEMBER_ROLES,
    MEMBER_STATUSES,
    ROLE_MEMBER,
    STATUS_ACCEPTED,
    STATUS_BLOCKED,
    STATUS_PENDING,
    STATUS_TRANSITIONS,
)
from syncit.core.types import SerializedEvent, SerializedGroup, SerializedMember
from syncit.errors import ValidationError
from syncit.utils import parse_timestamp, to_iso, utcnow


@dataclass
class Member:
    """A user's participation record within a group."""

    id: str
    name: str = ""
    initials: str = ""
    phone: str = ""
    role: str = ROLE_MEMBER
    joined_at: datetime.datetime = field(default_factory=utcnow)
    is_online: bool = False
    status: str = STATUS_PENDING

    def validate(self) -> None:
        """Validate the member record."""
        if not self.id:
            raise ValueError("Member id is required.")
        if self.role not in MEMBER_ROLES:
            raise ValueError(f"Unknown member role: {self.role}")
        if self.status not in MEMBER_STATUSES:
            raise ValueError(f"Unknown member status: {self.status}")

    def to_dict(self) -> SerializedMember:
        """Serialize the member for storage."""
        return {
            "id": self.id,
            "name": self.name,
            "initials": self.initials,
            "phone": self.phone,
            "role": self.role,
            "joinedAt": to_iso(self.joined_at),
            "isOnline": self.is_online,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Member:
        """Build a member from a stored or submitted record, filling defaults."""
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            initials=data.get("initials") or "",
            phone=data.get("phone") or "",
            role=data.get("role") or ROLE_MEMBER,
            joined_at=parse_timestamp(data.get("joinedAt")),
            is_online=bool(data.get("isOnline", False)),
            status=data.get("status") or STATUS_ACCEPTED,
        )


@dataclass
class Event:
    """A calendar entry owned by a group."""

    date: str
    type: str
    id: int = 0
    time: str = ""
    notes: str = ""
    user: str = ""
    user_initials: str = ""
    created_by: str = ""
    created_at: Optional[datetime.datetime] = None
    is_new_for_user: dict[str, bool] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate the event before it is stored."""
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type}")
        try:
            datetime.date.fromisoformat(self.date)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid event date: {self.date}") from None

    def to_dict(self) -> SerializedEvent:
        """Serialize the event for storage."""
        data: SerializedEvent = {
            "id": self.id,
            "date": self.date,
            "time": self.time,
            "notes": self.notes,
            "type": self.type,
            "user": self.user,
            "userInitials": self.user_initials,
            "createdBy": self.created_by,
            "isNewForUser": dict(self.is_new_for_user),
        }
        if self.created_at is not None:
            data["createdAt"] = to_iso(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Build an event from a stored or submitted record."""
        created_at = data.get("createdAt")
        return cls(
            id=int(data.get("id") or 0),
            date=data.get("date") or "",
            time=data.get("time") or "",
            notes=data.get("notes") or "",
            type=data.get("type") or "",
            user=data.get("user") or "",
            user_initials=data.get("userInitials") or "",
            created_by=data.get("createdBy") or "",
            created_at=parse_timestamp(created_at) if created_at else None,
            is_new_for_user={
                str(uid): bool(flag)
                for uid, flag in (data.get("isNewForUser") or {}).items()
            },
        )


@dataclass
class Group:
    """A named collection of members coordinating shared events."""

    id: int
    name: str
    admin: str
    description: str = ""
    members: list[Member] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    created_at: datetime.datetime = field(default_factory=utcnow)
    silent_notifications: bool = False
    creator_blocked: bool = False

    def get_member(self, member_id: str) -> Member | None:
        """Return the member with the given id, if present."""
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def get_event(self, event_id: int) -> Event | None:
        """Return the event with the given id, if present."""
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def is_visible_to(self, user_id: str) -> bool:
        """Whether the user administers the group or appears in its members."""
        return self.admin == user_id or any(m.id == user_id for m in self.members)


def serialize_group(group: Group) -> SerializedGroup:
    """Serialize a group into a backend document body (id excluded)."""
    return {
        "name": group.name,
        "description": group.description,
        "admin": group.admin,
        "members": [member.to_dict() for member in group.members],
        "events": [event.to_dict() for event in group.events],
        "createdAt": to_iso(group.created_at),
        "silentNotifications": group.silent_notifications,
        "creatorBlocked": group.creator_blocked,
    }


def format_group_data(doc_id: str, data: dict[str, Any]) -> Group:
    """Build a Group from a backend document, tolerating missing fields."""
    return Group(
        id=int(doc_id),
        name=data.get("name") or "",
        description=data.get("description") or "",
        admin=data.get("admin") or "",
        members=[Member.from_dict(m) for m in data.get("members") or []],
        events=[Event.from_dict(e) for e in data.get("events") or []],
        created_at=parse_timestamp(data.get("createdAt")),
        silent_notifications=bool(data.get("silentNotifications", False)),
        creator_blocked=bool(data.get("creatorBlocked", False)),
    )


def is_visible_document(data: dict[str, Any], user_id: str) -> bool:
    """Visibility check on a raw document, without building a Group."""
    if data.get("admin") == user_id:
        return True
    return any(
        isinstance(m, dict) and m.get("id") == user_id
        for m in data.get("members") or []
    )


def check_status_transition(current: str, new: str) -> None:
    """Raise ValidationError unless ``current -> new`` is an allowed change."""
    if new not in MEMBER_STATUSES:
        raise ValidationError(f"Unknown member status: {new}")
    if current == new or new == STATUS_BLOCKED:
        return
    if new not in STATUS_TRANSITIONS.get(current, set()):
        raise ValidationError(f"A {current} member cannot become {new}.")


def validate_new_group(
    name: str, admin: str, members: list[Member], events: list[Event]
) -> None:
    """Validate the data for a new group."""
    if not name or not name.strip():
        raise ValidationError("Group name is required.")
    if not admin:
        raise ValidationError("Group admin is required.")
    try:
        for member in members:
            member.validate()
        for event in events:
            event.validate()
    except ValueError as e:
        raise ValidationError(str(e)) from e

    admin_member = next((m for m in members if m.id == admin), None)
    if admin_member is None or admin_member.status != STATUS_ACCEPTED:
        raise ValidationError("The admin must be an accepted member of the group.")
