"""Session-scoped group service for one signed-in user."""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Optional

from syncit.core.constants import (
    MEMBER_STATUSES,
    ROLE_ADMIN,
    STATUS_ACCEPTED,
    STATUS_BLOCKED,
)
from syncit.core.result import Result
from syncit.errors import (
    AppError,
    NotFoundError,
    PermissionDeniedError,
    TransientNetworkError,
    ValidationError,
)
from syncit.group.models import Event, Group, Member
from syncit.group.services.membership import as_event, as_member
from syncit.group.services.reconciliation import ListenerState, ReconciliationListener
from syncit.group.services.visibility import (
    is_event_new_for_user,
    mark_event_as_viewed,
    stamp_new_event,
)
from syncit.utils import timestamp_id, utcnow

if TYPE_CHECKING:
    from syncit.group.services.membership import MembershipStore

GroupPatch = Callable[[Group], Optional[Group]]


class GroupSession:
    """Everything group-related for one signed-in user.

    Created on sign-in and closed on sign-out. Owns the user's reconciliation
    listener and the cached list of visible groups, checks permissions before
    calling the membership store, and patches the cache when a write fails
    for a transient reason.
    """

    def __init__(
        self,
        membership: MembershipStore,
        user_id: str,
        live: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the session. Nothing is fetched until open()."""
        if not user_id:
            raise ValueError("A signed-in user is required.")
        self.membership = membership
        self.user_id = user_id
        self.live = live
        self.logger = logger or logging.getLogger(__name__)
        self.lock = threading.RLock()
        self.listener = ReconciliationListener(
            membership.store, logger=self.logger, lock=self.lock
        )
        self.listener.on_update(self._replace_groups)
        self._groups: list[Group] = []
        self._viewed: set[tuple[int, int]] = set()

    # Lifecycle

    def open(self) -> GroupSession:
        """Start receiving updates (or load once when not live)."""
        if self.live:
            self.listener.start(self.user_id)
        else:
            self.refresh_groups()
        return self

    def close(self) -> None:
        """Tear down the listener and drop the cache."""
        self.listener.stop()
        with self.lock:
            self._groups = []
            self._viewed.clear()

    @property
    def is_live(self) -> bool:
        """Whether a backend subscription is currently open."""
        return self.listener.state in (ListenerState.SUBSCRIBING, ListenerState.ACTIVE)

    @property
    def loading(self) -> bool:
        """Whether the first snapshot is still outstanding."""
        return self.listener.loading

    # Reads

    @property
    def groups(self) -> list[Group]:
        """The groups visible to this user."""
        with self.lock:
            return list(self._groups)

    def get_group(self, group_id: int) -> Group | None:
        """Return a cached group by id."""
        with self.lock:
            return next((g for g in self._groups if g.id == group_id), None)

    def refresh_groups(self) -> Result[list[Group]]:
        """Reload the visible groups with a one-off full scan."""
        result = self.membership.get_user_groups(self.user_id)
        if result.ok:
            self._replace_groups(result.value or [])
        return result

    def user_status(self, group: Group) -> str:
        """This user's invitation status in the group."""
        member = group.get_member(self.user_id)
        return member.status if member else STATUS_ACCEPTED

    def is_event_new_for_user(self, event: Event) -> bool:
        """Whether the event shows as unseen for this user."""
        return is_event_new_for_user(event, self.user_id)

    def mark_event_as_viewed(self, group_id: int, event_id: int) -> bool:
        """Clear this user's "new" flag on an event.

        Local to this session: the flag is not written to the backend, but
        it survives rebuilds of the visible list for as long as the session
        is open.
        """
        with self.lock:
            marked = mark_event_as_viewed(
                self._groups, group_id, event_id, self.user_id
            )
            if marked:
                self._viewed.add((group_id, event_id))
            return marked

    def _replace_groups(self, groups: list[Group]) -> None:
        with self.lock:
            for group_id, event_id in self._viewed:
                mark_event_as_viewed(groups, group_id, event_id, self.user_id)
            self._groups = groups

    # Permission helpers

    def _require_group(self, group_id: int) -> Group:
        group = self.get_group(group_id)
        if group is None:
            result = self.membership.get_group(group_id)
            group = result.unwrap()
            if group is None or not group.is_visible_to(self.user_id):
                raise NotFoundError("Group not found or no longer available.")
        return group

    def _require_admin(self, group: Group) -> None:
        if group.admin != self.user_id:
            raise PermissionDeniedError("Only the group admin can do that.")

    # Optimistic updates

    def _patch_group(self, group_id: int, patch: GroupPatch) -> None:
        """Apply a patch to one cached group; a None result drops the group."""
        with self.lock:
            groups = []
            for group in self._groups:
                if group.id == group_id:
                    patched = patch(copy.deepcopy(group))
                    if patched is not None:
                        groups.append(patched)
                else:
                    groups.append(group)
            self._groups = groups

    def _cached_member(self, group_id: int, member_id: str) -> Member | None:
        group = self.get_group(group_id)
        return group.get_member(member_id) if group else None

    def _settle(
        self,
        action: str,
        result: Result,
        group_id: int,
        patch: GroupPatch,
        local_value: Optional[Callable[[], Any]] = None,
    ) -> Result:
        """Fall back to a local patch when the write failed transiently.

        ``local_value`` supplies the result value from the patched cache when
        the failed write produced none.
        """
        if isinstance(result.error, TransientNetworkError):
            self.logger.warning(
                f"Failed to {action} on group {group_id}, applying locally: "
                f"{result.error.message}"
            )
            self._patch_group(group_id, patch)
            if result.value is None and local_value is not None:
                result = Result(value=local_value(), error=result.error)
            return result.as_optimistic()
        return result

    # Mutations

    def create_group(self, data: dict[str, Any]) -> Result[Group]:
        """Create a group administered by this user."""
        data = {**data, "admin": self.user_id}
        result = self.membership.create_group(data)
        if result.ok and result.value is not None and not self.live:
            with self.lock:
                self._groups = self._groups + [result.value]
        return result

    def update_group(self, group_id: int, updates: dict[str, Any]) -> Result[Group]:
        """Change group details. Admin only."""
        group_or_error = self._check(group_id, admin=True)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)

        def patch(group: Group) -> Group:
            if "name" in updates:
                group.name = updates["name"].strip()
            if "description" in updates:
                group.description = updates["description"] or ""
            if "admin" in updates:
                group.admin = updates["admin"]
            if "members" in updates:
                group.members = [
                    copy.deepcopy(as_member(m)) for m in updates["members"]
                ]
            if "events" in updates:
                group.events = [
                    copy.deepcopy(as_event(e)) for e in updates["events"]
                ]
            if "silent_notifications" in updates:
                group.silent_notifications = bool(updates["silent_notifications"])
            if "creator_blocked" in updates:
                group.creator_blocked = bool(updates["creator_blocked"])
            return group

        result = self.membership.update_group(group_id, updates)
        return self._settle(
            "update group", result, group_id, patch, lambda: self.get_group(group_id)
        )

    def delete_group_for_user(self, group_id: int) -> Result[None]:
        """Delete the group if this user is its admin, otherwise leave it."""
        group_or_error = self._check(group_id)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)
        group = group_or_error

        if group.admin == self.user_id:
            result = self.membership.delete_group(group_id)
        else:
            removed = self.membership.remove_member_from_group(group_id, self.user_id)
            result = Result(error=removed.error)
            member = group.get_member(self.user_id)
            if removed.value and member and self.membership.notifications:
                self.membership.notifications.send_member_left(group, member)
        return self._settle("delete group", result, group_id, lambda g: None)

    def add_members(
        self, group_id: int, members: list[Member | dict[str, Any]]
    ) -> Result[list[Member]]:
        """Invite members to the group. Admin only.

        Members already in the group are skipped. On failure the result
        carries the members that were written before it.
        """
        group_or_error = self._check(group_id, admin=True)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)

        existing = {m.id for m in group_or_error.members}
        new_members = []
        for data in members:
            member = copy.deepcopy(as_member(data))
            if member.id not in existing:
                existing.add(member.id)
                new_members.append(member)

        added: list[Member] = []
        for index, member in enumerate(new_members):
            result = self.membership.add_member_to_group(group_id, member)
            if result.ok:
                added.append(result.value)
                continue
            if not isinstance(result.error, TransientNetworkError):
                return Result(value=added, error=result.error)

            unsaved = new_members[index:]
            for pending in unsaved:
                pending.joined_at = utcnow()

            def patch(group: Group) -> Group:
                group.members.extend(
                    m for m in unsaved if group.get_member(m.id) is None
                )
                return group

            return self._settle(
                "add members",
                Result(value=added + unsaved, error=result.error),
                group_id,
                patch,
            )
        return Result.success(added)

    def remove_member(self, group_id: int, member_id: str) -> Result[bool]:
        """Remove a member. Allowed for the admin, or for the member themselves."""
        group_or_error = self._check(group_id)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)
        group = group_or_error

        if member_id != self.user_id and group.admin != self.user_id:
            return Result.failure(
                PermissionDeniedError("Only the group admin can remove other members.")
            )
        if member_id == group.admin:
            return Result.failure(
                ValidationError("The admin cannot leave; delete the group instead.")
            )

        member = group.get_member(member_id)
        result = self.membership.remove_member_from_group(group_id, member_id)
        if result.ok and result.value and member and self.membership.notifications:
            if member_id == self.user_id:
                self.membership.notifications.send_member_left(group, member)
            else:
                admin = group.get_member(self.user_id)
                self.membership.notifications.send_member_removed(
                    group, member, admin.name if admin else ""
                )

        def patch(g: Group) -> Optional[Group]:
            if member_id == self.user_id:
                return None
            g.members = [m for m in g.members if m.id != member_id]
            return g

        return self._settle("remove member", result, group_id, patch, lambda: True)

    def promote_member_to_admin(self, group_id: int, member_id: str) -> Result[Member]:
        """Give a member the admin role. Admin only.

        The group's admin pointer does not move.
        """
        group_or_error = self._check(group_id, admin=True)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)

        def patch(group: Group) -> Group:
            member = group.get_member(member_id)
            if member:
                member.role = ROLE_ADMIN
            return group

        result = self.membership.promote_member_to_admin(group_id, member_id)
        return self._settle(
            "promote member",
            result,
            group_id,
            patch,
            lambda: self._cached_member(group_id, member_id),
        )

    def update_member_status(
        self, group_id: int, member_id: str, status: str
    ) -> Result[Member]:
        """Change a member's invitation status.

        Members answer their own invitations; the admin may only block.
        """
        if status not in MEMBER_STATUSES:
            return Result.failure(ValidationError(f"Unknown member status: {status}"))
        group_or_error = self._check(group_id)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)
        group = group_or_error

        if member_id != self.user_id and not (
            group.admin == self.user_id and status == STATUS_BLOCKED
        ):
            return Result.failure(
                PermissionDeniedError("You can only answer your own invitations.")
            )

        result = self.membership.update_member_status(group_id, member_id, status)
        if (
            result.ok
            and status == STATUS_ACCEPTED
            and member_id != group.admin
            and self.membership.notifications
        ):
            self.membership.notifications.send_invite_accepted(group, result.value)

        def patch(g: Group) -> Group:
            member = g.get_member(member_id)
            if member:
                member.status = status
            return g

        return self._settle(
            "update member status",
            result,
            group_id,
            patch,
            lambda: self._cached_member(group_id, member_id),
        )

    def block_group_creator(self, group_id: int) -> Result[Group]:
        """Block the creator of a group this user was invited to."""
        group_or_error = self._check(group_id)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)
        if group_or_error.admin == self.user_id:
            return Result.failure(ValidationError("You cannot block yourself."))

        def patch(group: Group) -> Group:
            group.creator_blocked = True
            return group

        result = self.membership.block_group_creator(group_id)
        return self._settle(
            "block creator", result, group_id, patch, lambda: self.get_group(group_id)
        )

    def add_event(self, group_id: int, event: Event | dict[str, Any]) -> Result[Event]:
        """Add an event. The admin and accepted members may do this."""
        group_or_error = self._check(group_id)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)
        group = group_or_error
        if group.admin != self.user_id and self.user_status(group) != STATUS_ACCEPTED:
            return Result.failure(
                PermissionDeniedError("Accept the invitation before adding events.")
            )

        result = self.membership.add_event_to_group(group_id, event, self.user_id)
        if isinstance(result.error, TransientNetworkError):
            local = copy.deepcopy(as_event(event))
            local.id = timestamp_id()
            local.created_by = self.user_id
            local.created_at = utcnow()
            stamp_new_event(local, group.members, self.user_id)

            def patch(g: Group) -> Group:
                g.events.append(local)
                return g

            return self._settle(
                "add event", Result(value=local, error=result.error), group_id, patch
            )
        return result

    def delete_event(self, group_id: int, event_id: int) -> Result[bool]:
        """Remove an event. Allowed for the admin and the event's creator."""
        group_or_error = self._check(group_id)
        if isinstance(group_or_error, AppError):
            return Result.failure(group_or_error)
        group = group_or_error
        event = group.get_event(event_id)
        if (
            group.admin != self.user_id
            and event is not None
            and event.created_by != self.user_id
        ):
            return Result.failure(
                PermissionDeniedError(
                    "Only the admin or the event's creator can delete it."
                )
            )

        def patch(g: Group) -> Group:
            g.events = [e for e in g.events if e.id != event_id]
            return g

        result = self.membership.remove_event_from_group(group_id, event_id)
        return self._settle("delete event", result, group_id, patch, lambda: True)

    def _check(self, group_id: int, admin: bool = False) -> Group | AppError:
        """Resolve the group and, optionally, require this user to be its admin."""
        try:
            group = self._require_group(group_id)
            if admin:
                self._require_admin(group)
        except AppError as e:
            self.logger.warning(f"Denied for user {self.user_id}: {e.message}")
            return e
        return group


class SessionRegistry:
    """Keeps at most one open GroupSession per signed-in user.

    A session unused for longer than ``max_idle`` seconds is closed the next
    time the registry is used, which also ends its backend subscription.
    """

    def __init__(
        self,
        factory: Callable[[str], GroupSession],
        max_idle: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the registry with a session factory."""
        self.factory = factory
        self.logger = logger or logging.getLogger(__name__)
        self.max_idle = max_idle
        self.clock = clock
        self._sessions: dict[str, GroupSession] = {}
        self._last_used: dict[str, float] = {}
        self._lock = threading.Lock()

    def open(self, user_id: str) -> GroupSession:
        """Return the user's open session, creating one if needed."""
        self.evict_idle()
        with self._lock:
            self._last_used[user_id] = self.clock()
            session = self._sessions.get(user_id)
            if session is None:
                session = self.factory(user_id)
                self._sessions[user_id] = session
            else:
                return session
        try:
            return session.open()
        except AppError:
            with self._lock:
                self._sessions.pop(user_id, None)
                self._last_used.pop(user_id, None)
            raise

    def get(self, user_id: str) -> GroupSession | None:
        """Return the user's open session, if any."""
        self.evict_idle()
        with self._lock:
            session = self._sessions.get(user_id)
            if session is not None:
                self._last_used[user_id] = self.clock()
            return session

    def close(self, user_id: str) -> None:
        """Close and forget the user's session."""
        with self._lock:
            session = self._sessions.pop(user_id, None)
            self._last_used.pop(user_id, None)
        if session is not None:
            session.close()

    def evict_idle(self) -> list[str]:
        """Close every session idle for longer than ``max_idle``."""
        if self.max_idle is None:
            return []
        cutoff = self.clock() - self.max_idle
        with self._lock:
            idle = [u for u, used in self._last_used.items() if used < cutoff]
            sessions = [(u, self._sessions.pop(u, None)) for u in idle]
            for user_id in idle:
                del self._last_used[user_id]
        for user_id, session in sessions:
            if session is not None:
                self.logger.info(f"Closing idle group session for user {user_id}")
                session.close()
        return idle

    def close_all(self) -> None:
        """Close every session."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_used.clear()
        for session in sessions:
            session.close()
