"""Utility functions for the group blueprint."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from flask import current_app, jsonify, session

from syncit.errors import ValidationError
from syncit.group.models import Event, Group, Member, serialize_group
from syncit.group.services.visibility import group_has_new_events

if TYPE_CHECKING:
    from flask_wtf import FlaskForm

    from syncit.core.result import Result
    from syncit.group.services.session import GroupSession


def get_group_session() -> GroupSession:
    """Return the signed-in user's group session, opening it if needed."""
    group_session = current_app.extensions["group_sessions"].open(session["user_id"])
    if not group_session.is_live:
        group_session.refresh_groups()
    return group_session


def validate_form(form: FlaskForm) -> None:
    """Raise ValidationError with the form's messages if it does not validate."""
    if not form.validate_on_submit():
        messages = [
            f"{field}: {message}"
            for field, field_messages in form.errors.items()
            for message in field_messages
        ]
        raise ValidationError("; ".join(messages) or "Validation failed.")


def respond(result: Result, render: Callable[[Any], Any]) -> Any:
    """Turn a mutation result into a JSON response.

    Failures raise so the error handlers render them. Optimistic results are
    reported as 202 Accepted with the reason the backend write failed.
    """
    if result.optimistic:
        return (
            jsonify(
                {
                    "status": "pending",
                    "optimistic": True,
                    "message": result.error.message,
                    "data": render(result.value),
                }
            ),
            202,
        )
    result.unwrap()
    return jsonify({"status": "success", "data": render(result.value)})


def member_to_json(member: Member | None) -> dict[str, Any] | None:
    """Serialize a member for the API."""
    return member.to_dict() if member else None


def event_to_json(event: Event | None, group_session: GroupSession) -> Any:
    """Serialize an event for the API, with this user's unseen flag."""
    if event is None:
        return None
    data = dict(event.to_dict())
    data["isNew"] = group_session.is_event_new_for_user(event)
    return data


def group_to_json(group: Group | None, group_session: GroupSession) -> Any:
    """Serialize a group for the API, with this user's view of it."""
    if group is None:
        return None
    data: dict[str, Any] = dict(serialize_group(group))
    data["id"] = group.id
    data["events"] = [event_to_json(e, group_session) for e in group.events]
    data["userStatus"] = group_session.user_status(group)
    data["hasNewEvents"] = group_has_new_events(group, group_session.user_id)
    data["isAdmin"] = group.admin == group_session.user_id
    return data
