"""Service layer for group membership and event persistence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from syncit.core.constants import (
    GROUPS_COLLECTION,
    ROLE_ADMIN,
    ROLE_MEMBER,
    STATUS_PENDING,
    UPDATABLE_GROUP_FIELDS,
)
from syncit.core.result import Result
from syncit.errors import AppError, NotFoundError, ValidationError
from syncit.group.models import (
    Event,
    Group,
    Member,
    check_status_transition,
    format_group_data,
    serialize_group,
    validate_new_group,
)
from syncit.group.services.reconciliation import build_visible_groups
from syncit.group.services.visibility import stamp_new_event
from syncit.utils import timestamp_id, utcnow

if TYPE_CHECKING:
    from syncit.backend import DocumentStore
    from syncit.notifications import NotificationService

T = TypeVar("T")


def as_member(data: Member | dict[str, Any]) -> Member:
    """Coerce submitted member data into a new Member record."""
    if isinstance(data, Member):
        return data
    return Member(
        id=data.get("id") or "",
        name=data.get("name") or "",
        initials=data.get("initials") or "",
        phone=data.get("phone") or "",
        role=data.get("role") or ROLE_MEMBER,
        is_online=bool(data.get("isOnline", False)),
        status=data.get("status") or STATUS_PENDING,
    )


def as_event(data: Event | dict[str, Any]) -> Event:
    """Coerce submitted event data into an Event record."""
    if isinstance(data, Event):
        return data
    return Event.from_dict(data)


class MembershipStore:
    """Creates, updates and deletes group records and their members and events.

    Every mutation returns a ``Result``. Application errors, including the
    ones translated from the backend, come back as ``Result.failure`` rather
    than being raised.
    """

    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationService | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the service."""
        self.store = store
        self.notifications = notifications
        self.logger = logger or logging.getLogger(__name__)

    def _run(self, action: str, operation: Callable[[], T]) -> Result[T]:
        """Run an operation, capturing application errors in the result."""
        try:
            return Result.success(operation())
        except ValidationError as e:
            self.logger.warning(f"Rejected {action}: {e.message}")
            return Result.failure(e)
        except AppError as e:
            self.logger.error(f"Error {action}: {e.message}")
            return Result.failure(e)

    def _load(self, group_id: int) -> Group:
        data = self.store.get(GROUPS_COLLECTION, str(group_id))
        if data is None:
            raise NotFoundError("Group not found or no longer available.")
        return format_group_data(str(group_id), data)

    def _save_members(self, group: Group) -> None:
        self.store.update(
            GROUPS_COLLECTION,
            str(group.id),
            {"members": [m.to_dict() for m in group.members]},
        )

    def _save_events(self, group: Group) -> None:
        self.store.update(
            GROUPS_COLLECTION,
            str(group.id),
            {"events": [e.to_dict() for e in group.events]},
        )

    # Groups

    def create_group(self, data: dict[str, Any]) -> Result[Group]:
        """Persist a new group and invite its pending members.

        ``data`` holds ``name``, ``description``, ``admin``, ``members`` and
        optionally ``events``, ``silent_notifications`` and
        ``creator_blocked``. The admin must be listed as an accepted member.
        """

        def operation() -> Group:
            members = [as_member(m) for m in data.get("members") or []]
            events = [as_event(e) for e in data.get("events") or []]
            name = data.get("name") or ""
            admin = data.get("admin") or ""
            validate_new_group(name, admin, members, events)

            group_id = timestamp_id()
            while self.store.exists(GROUPS_COLLECTION, str(group_id)):
                group_id += 1

            group = Group(
                id=group_id,
                name=name.strip(),
                description=data.get("description") or "",
                admin=admin,
                members=members,
                events=events,
                created_at=utcnow(),
                silent_notifications=bool(data.get("silent_notifications", False)),
                creator_blocked=bool(data.get("creator_blocked", False)),
            )
            self.store.create(GROUPS_COLLECTION, str(group.id), serialize_group(group))
            self.logger.info(f"Created group {group.id} with {len(members)} members")

            if self.notifications:
                admin_member = group.get_member(admin)
                self.notifications.send_group_invitations(
                    group,
                    [m for m in members if m.id != admin],
                    admin_member.name if admin_member else "",
                )
            return group

        return self._run("creating group", operation)

    def update_group(self, group_id: int, updates: dict[str, Any]) -> Result[Group]:
        """Merge the supplied fields into an existing group in one write."""

        def operation() -> Group:
            unknown = set(updates) - set(UPDATABLE_GROUP_FIELDS)
            if unknown:
                raise ValidationError(
                    f"Cannot update group fields: {', '.join(sorted(unknown))}"
                )
            if "name" in updates and not (updates["name"] or "").strip():
                raise ValidationError("Group name is required.")
            if "admin" in updates and not updates["admin"]:
                raise ValidationError("Group admin is required.")

            group = self._load(group_id)
            partial: dict[str, Any] = {}
            if "name" in updates:
                group.name = updates["name"].strip()
                partial["name"] = group.name
            if "description" in updates:
                group.description = updates["description"] or ""
                partial["description"] = group.description
            if "admin" in updates:
                group.admin = updates["admin"]
                partial["admin"] = group.admin
            if "members" in updates:
                group.members = [as_member(m) for m in updates["members"]]
                partial["members"] = [m.to_dict() for m in group.members]
            if "events" in updates:
                group.events = [as_event(e) for e in updates["events"]]
                partial["events"] = [e.to_dict() for e in group.events]
            if "silent_notifications" in updates:
                group.silent_notifications = bool(updates["silent_notifications"])
                partial["silentNotifications"] = group.silent_notifications
            if "creator_blocked" in updates:
                group.creator_blocked = bool(updates["creator_blocked"])
                partial["creatorBlocked"] = group.creator_blocked

            if ("admin" in updates or "members" in updates) and (
                group.get_member(group.admin) is None
            ):
                raise ValidationError("The group admin must be a member of the group.")

            if partial:
                self.store.update(GROUPS_COLLECTION, str(group_id), partial)
            return group

        return self._run(f"updating group {group_id}", operation)

    def delete_group(self, group_id: int) -> Result[None]:
        """Remove the group, with all of its members and events."""

        def operation() -> None:
            self.store.delete(GROUPS_COLLECTION, str(group_id))
            self.logger.info(f"Deleted group {group_id}")

        return self._run(f"deleting group {group_id}", operation)

    def block_group_creator(self, group_id: int) -> Result[Group]:
        """Flag that an invitee has blocked the group's creator."""
        return self.update_group(group_id, {"creator_blocked": True})

    def get_group(self, group_id: int) -> Result[Group]:
        """Fetch a single group."""
        return self._run(f"fetching group {group_id}", lambda: self._load(group_id))

    def get_user_groups(self, user_id: str) -> Result[list[Group]]:
        """Fetch every group the user administers or is listed in."""

        def operation() -> list[Group]:
            return build_visible_groups(
                self.store.list(GROUPS_COLLECTION), user_id, self.logger
            )

        return self._run(f"fetching groups for {user_id}", operation)

    # Members

    def add_member_to_group(
        self, group_id: int, member: Member | dict[str, Any]
    ) -> Result[Member]:
        """Append a member, pending unless a status is given.

        Does not check for an existing member with the same id.
        """

        def operation() -> Member:
            new_member = as_member(member)
            try:
                new_member.validate()
            except ValueError as e:
                raise ValidationError(str(e)) from e
            new_member.joined_at = utcnow()

            group = self._load(group_id)
            group.members.append(new_member)
            self._save_members(group)

            if self.notifications and new_member.status == STATUS_PENDING:
                admin_member = group.get_member(group.admin)
                self.notifications.send_group_invitations(
                    group, [new_member], admin_member.name if admin_member else ""
                )
            return new_member

        return self._run(f"adding member to group {group_id}", operation)

    def remove_member_from_group(self, group_id: int, member_id: str) -> Result[bool]:
        """Filter a member out of the group. An absent member is a no-op."""

        def operation() -> bool:
            group = self._load(group_id)
            if member_id == group.admin:
                raise ValidationError("The admin cannot leave the group.")
            remaining = [m for m in group.members if m.id != member_id]
            if len(remaining) == len(group.members):
                return False
            group.members = remaining
            self._save_members(group)
            return True

        return self._run(f"removing member from group {group_id}", operation)

    def update_member_status(
        self, group_id: int, member_id: str, status: str
    ) -> Result[Member]:
        """Set one member's invitation status in place."""

        def operation() -> Member:
            group = self._load(group_id)
            member = group.get_member(member_id)
            if member is None:
                raise NotFoundError("Member not found in this group.")
            check_status_transition(member.status, status)
            member.status = status
            self._save_members(group)
            return member

        return self._run(f"updating member status in group {group_id}", operation)

    def promote_member_to_admin(self, group_id: int, member_id: str) -> Result[Member]:
        """Give a member the admin role.

        The group's ``admin`` field is left as it is; the two are tracked
        separately.
        """

        def operation() -> Member:
            group = self._load(group_id)
            member = group.get_member(member_id)
            if member is None:
                raise NotFoundError("Member not found in this group.")
            member.role = ROLE_ADMIN
            self._save_members(group)
            return member

        return self._run(f"promoting member in group {group_id}", operation)

    # Events

    def add_event_to_group(
        self, group_id: int, event: Event | dict[str, Any], creator_id: str
    ) -> Result[Event]:
        """Append an event, marked new for every member but its creator."""

        def operation() -> Event:
            new_event = as_event(event)
            try:
                new_event.validate()
            except ValueError as e:
                raise ValidationError(str(e)) from e

            group = self._load(group_id)
            existing_ids = {e.id for e in group.events}
            new_event.id = timestamp_id()
            while new_event.id in existing_ids:
                new_event.id += 1
            new_event.created_by = creator_id
            new_event.created_at = utcnow()

            creator = group.get_member(creator_id)
            if creator is not None:
                new_event.user = new_event.user or creator.name
                new_event.user_initials = new_event.user_initials or creator.initials

            stamp_new_event(new_event, group.members, creator_id)
            group.events.append(new_event)
            self._save_events(group)

            if self.notifications:
                self.notifications.send_new_event(group, new_event)
            return new_event

        return self._run(f"adding event to group {group_id}", operation)

    def remove_event_from_group(self, group_id: int, event_id: int) -> Result[bool]:
        """Filter an event out of the group. An absent event is a no-op."""

        def operation() -> bool:
            group = self._load(group_id)
            remaining = [e for e in group.events if e.id != event_id]
            if len(remaining) == len(group.events):
                return False
            group.events = remaining
            self._save_events(group)
            return True

        return self._run(f"removing event from group {group_id}", operation)
