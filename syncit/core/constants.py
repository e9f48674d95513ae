"""Global constants for the syncit application."""

# Collection names
GROUPS_COLLECTION = "groups"
USERS_COLLECTION = "users"

# Member roles
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
MEMBER_ROLES = (ROLE_ADMIN, ROLE_MEMBER)

# Member statuses
STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_DECLINED = "declined"
STATUS_BLOCKED = "blocked"
MEMBER_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_DECLINED, STATUS_BLOCKED)

# Allowed status changes; any status may also move to blocked.
STATUS_TRANSITIONS = {
    STATUS_PENDING: {STATUS_ACCEPTED, STATUS_DECLINED},
}

# Event types
EVENT_TYPES = ("morning", "afternoon", "evening", "all-day")

# Fields accepted by MembershipStore.update_group
UPDATABLE_GROUP_FIELDS = (
    "name",
    "description",
    "admin",
    "members",
    "events",
    "silent_notifications",
    "creator_blocked",
)

# Notification types
NOTIFICATION_GROUP_INVITATION = "group_invitation"
NOTIFICATION_NEW_EVENT = "new_event"
NOTIFICATION_MEMBER_LEFT = "member_left"
NOTIFICATION_MEMBER_REMOVED = "member_removed"
NOTIFICATION_INVITE_ACCEPTED = "invite_accepted"

# Phone numbers shorter than this cannot identify a user
MIN_PHONE_DIGITS = 10
