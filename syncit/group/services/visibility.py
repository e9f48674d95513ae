"""Per-user "new event" flags on group events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from syncit.group.models import Event, Group, Member


def stamp_new_event(event: Event, members: Iterable[Member], creator_id: str) -> Event:
    """Mark the event as new for every member except its creator.

    The creator gets no entry at all.
    """
    flags = {member.id: True for member in members if member.id != creator_id}
    event.is_new_for_user = flags
    return event


def mark_event_as_viewed(
    groups: Iterable[Group], group_id: int, event_id: int, user_id: str
) -> bool:
    """Clear the viewing user's flag on one event in the local cache.

    Only ``user_id``'s own entry is touched. Returns False when the group or
    event is not in ``groups``.
    """
    for group in groups:
        if group.id != group_id:
            continue
        event = group.get_event(event_id)
        if event is None:
            return False
        event.is_new_for_user[user_id] = False
        return True
    return False


def is_event_new_for_user(event: Event, user_id: Optional[str]) -> bool:
    """Whether the event should show as unseen for the user.

    A missing flag counts as new; only an explicit False clears it.
    """
    if not user_id or event.created_by == user_id:
        return False
    return event.is_new_for_user.get(user_id) is not False


def group_has_new_events(group: Group, user_id: Optional[str]) -> bool:
    """Whether any event in the group is new for the user."""
    return any(is_event_new_for_user(event, user_id) for event in group.events)
