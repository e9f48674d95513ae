"""Push notification delivery for group activity."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from firebase_admin import messaging

from syncit.core.constants import (
    NOTIFICATION_GROUP_INVITATION,
    NOTIFICATION_INVITE_ACCEPTED,
    NOTIFICATION_MEMBER_LEFT,
    NOTIFICATION_MEMBER_REMOVED,
    NOTIFICATION_NEW_EVENT,
    STATUS_ACCEPTED,
    STATUS_PENDING,
    USERS_COLLECTION,
)

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

    from syncit.group.models import Event, Group, Member


class NotificationService:
    """Sends FCM messages to group members.

    Delivery is best effort: failures are logged and never reach the caller,
    so a failed push cannot undo the mutation that triggered it.
    """

    def __init__(
        self,
        db: Client | Any,
        logger: logging.Logger | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the service."""
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.enabled = enabled

    def _tokens_for(self, user_ids: Iterable[str]) -> list[str]:
        """Look up the FCM token of each user who has one."""
        tokens = []
        for user_id in user_ids:
            user_doc = self.db.collection(USERS_COLLECTION).document(user_id).get()
            if not user_doc.exists:
                continue
            token = (user_doc.to_dict() or {}).get("fcmToken")
            if token:
                tokens.append(token)
        return tokens

    def _send(
        self, user_ids: Iterable[str], title: str, body: str, data: dict[str, str]
    ) -> int:
        """Send one message to every listed user. Returns the success count."""
        if not self.enabled:
            return 0
        try:
            tokens = self._tokens_for(user_ids)
            if not tokens:
                return 0
            message = messaging.MulticastMessage(
                tokens=tokens,
                notification=messaging.Notification(title=title, body=body),
                data=data,
            )
            response = messaging.send_each_for_multicast(message)
            if response.failure_count:
                self.logger.warning(
                    f"{response.failure_count} of {len(tokens)} "
                    f"'{data.get('type')}' notifications failed"
                )
            return response.success_count
        except Exception as e:
            self.logger.error(f"Error sending '{data.get('type')}' notification: {e}")
            return 0

    @staticmethod
    def _recipients(group: Group, exclude: Iterable[str] = ()) -> list[str]:
        """Accepted members of the group, minus the excluded ids."""
        excluded = set(exclude)
        return [
            m.id
            for m in group.members
            if m.status == STATUS_ACCEPTED and m.id not in excluded
        ]

    def send_group_invitations(
        self, group: Group, members: Iterable[Member], sender_name: str
    ) -> int:
        """Invite every pending member in ``members`` to the group."""
        invitees = [m.id for m in members if m.status == STATUS_PENDING]
        if not invitees:
            return 0
        return self._send(
            invitees,
            "New Group Invitation",
            f"{sender_name or 'Someone'} invited you to join {group.name}",
            {"groupId": str(group.id), "type": NOTIFICATION_GROUP_INVITATION},
        )

    def send_new_event(self, group: Group, event: Event) -> int:
        """Tell accepted members about an event, unless the group is silent."""
        if group.silent_notifications:
            return 0
        body = f"{event.notes} on {event.date}" if event.notes else event.date
        return self._send(
            self._recipients(group, exclude=[event.created_by]),
            f"New Event in {group.name}",
            body,
            {
                "groupId": str(group.id),
                "eventId": str(event.id),
                "type": NOTIFICATION_NEW_EVENT,
            },
        )

    def send_member_left(self, group: Group, member: Member) -> int:
        """Tell the remaining members that someone left."""
        return self._send(
            self._recipients(group, exclude=[member.id]),
            group.name,
            f"{member.name} left the group",
            {"groupId": str(group.id), "type": NOTIFICATION_MEMBER_LEFT},
        )

    def send_member_removed(
        self, group: Group, member: Member, admin_name: str
    ) -> int:
        """Tell the remaining members that the admin removed someone."""
        return self._send(
            self._recipients(group, exclude=[member.id]),
            group.name,
            f"{admin_name} removed {member.name} from the group",
            {"groupId": str(group.id), "type": NOTIFICATION_MEMBER_REMOVED},
        )

    def send_invite_accepted(self, group: Group, member: Member) -> int:
        """Tell the group admin that an invitation was accepted."""
        return self._send(
            [group.admin],
            group.name,
            f"{member.name} joined the group",
            {"groupId": str(group.id), "type": NOTIFICATION_INVITE_ACCEPTED},
        )
