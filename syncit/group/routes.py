"""Routes for the group blueprint."""

from firebase_admin import firestore
from flask import g, jsonify, request

from syncit.auth.decorators import login_required
from syncit.core.constants import (
    ROLE_ADMIN,
    ROLE_MEMBER,
    STATUS_ACCEPTED,
    STATUS_PENDING,
)
from syncit.errors import NotFoundError, ValidationError
from syncit.user.services import UserService, member_from_user

from . import bp
from .forms import EditGroupForm, EventForm, GroupForm, MemberStatusForm
from .utils import (
    event_to_json,
    get_group_session,
    group_to_json,
    member_to_json,
    respond,
    validate_form,
)


def _json_body():
    return request.get_json(silent=True) or {}


@bp.route("/", methods=["GET"])
@login_required
def view_groups():
    """List the groups visible to the current user."""
    group_session = get_group_session()
    return jsonify(
        {
            "status": "success",
            "loading": group_session.loading,
            "data": [group_to_json(grp, group_session) for grp in group_session.groups],
        }
    )


@bp.route("/create", methods=["POST"])
@login_required
def create_group():
    """Create a new group administered by the current user."""
    form = GroupForm()
    validate_form(form)
    body = _json_body()
    group_session = get_group_session()

    admin_member = member_from_user(g.user, status=STATUS_ACCEPTED)
    admin_member.role = ROLE_ADMIN
    members = [admin_member]
    for data in body.get("members") or []:
        if not isinstance(data, dict) or data.get("id") == admin_member.id:
            continue
        members.append({**data, "status": STATUS_PENDING, "role": ROLE_MEMBER})

    result = group_session.create_group(
        {
            "name": form.name.data,
            "description": form.description.data or "",
            "members": members,
            "silent_notifications": bool(body.get("silentNotifications")),
        }
    )
    response = respond(result, lambda grp: group_to_json(grp, group_session))
    return response if isinstance(response, tuple) else (response, 201)


@bp.route("/<int:group_id>", methods=["GET"])
@login_required
def view_group(group_id):
    """Show one group with its members and events."""
    group_session = get_group_session()
    group = group_session.get_group(group_id)
    if group is None:
        raise NotFoundError("Group not found or no longer available.")
    return jsonify({"status": "success", "data": group_to_json(group, group_session)})


@bp.route("/<int:group_id>/edit", methods=["POST"])
@login_required
def edit_group(group_id):
    """Edit a group's name, description or notification setting."""
    form = EditGroupForm()
    validate_form(form)
    body = _json_body()

    updates = {}
    if "name" in body:
        updates["name"] = form.name.data
    if "description" in body:
        updates["description"] = form.description.data or ""
    if "silentNotifications" in body:
        updates["silent_notifications"] = bool(body["silentNotifications"])
    if not updates:
        raise ValidationError("Nothing to update.")

    group_session = get_group_session()
    result = group_session.update_group(group_id, updates)
    return respond(result, lambda grp: group_to_json(grp, group_session))


@bp.route("/<int:group_id>/delete", methods=["POST"])
@login_required
def delete_group(group_id):
    """Delete the group (admin) or leave it (everyone else)."""
    group_session = get_group_session()
    result = group_session.delete_group_for_user(group_id)
    return respond(result, lambda _: None)


@bp.route("/<int:group_id>/members", methods=["POST"])
@login_required
def add_members(group_id):
    """Invite users to the group, by id or by phone number."""
    db = firestore.client()
    members = []
    for data in _json_body().get("members") or []:
        if not isinstance(data, dict):
            continue
        user = None
        if data.get("id"):
            user = UserService.get_user_by_id(db, data["id"])
        elif data.get("phone"):
            user = UserService.search_user_by_phone_number(db, data["phone"])
        if user is None:
            lookup = data.get("id") or data.get("phone")
            raise NotFoundError(f"No app user found for {lookup}.")
        members.append(member_from_user(user, status=STATUS_PENDING))
    if not members:
        raise ValidationError("No members to add.")

    group_session = get_group_session()
    result = group_session.add_members(group_id, members)
    return respond(result, lambda added: [member_to_json(m) for m in added or []])


@bp.route("/<int:group_id>/members/<string:member_id>/remove", methods=["POST"])
@login_required
def remove_member(group_id, member_id):
    """Remove a member from the group."""
    group_session = get_group_session()
    result = group_session.remove_member(group_id, member_id)
    return respond(result, lambda removed: {"removed": bool(removed)})


@bp.route("/<int:group_id>/members/<string:member_id>/promote", methods=["POST"])
@login_required
def promote_member(group_id, member_id):
    """Give a member the admin role."""
    group_session = get_group_session()
    result = group_session.promote_member_to_admin(group_id, member_id)
    return respond(result, member_to_json)


@bp.route("/<int:group_id>/status", methods=["POST"])
@login_required
def update_status(group_id):
    """Accept, decline or block an invitation to the group."""
    form = MemberStatusForm()
    validate_form(form)
    group_session = get_group_session()
    member_id = _json_body().get("memberId") or group_session.user_id
    result = group_session.update_member_status(group_id, member_id, form.status.data)
    return respond(result, member_to_json)


@bp.route("/<int:group_id>/block-creator", methods=["POST"])
@login_required
def block_creator(group_id):
    """Block the user who created the group."""
    group_session = get_group_session()
    result = group_session.block_group_creator(group_id)
    return respond(result, lambda grp: group_to_json(grp, group_session))


@bp.route("/<int:group_id>/events", methods=["POST"])
@login_required
def add_event(group_id):
    """Add an event to the group calendar."""
    form = EventForm()
    validate_form(form)
    group_session = get_group_session()
    event = {
        "date": form.date.data.isoformat(),
        "time": form.time.data or "",
        "notes": form.notes.data or "",
        "type": form.type.data,
    }
    result = group_session.add_event(group_id, event)
    response = respond(result, lambda ev: event_to_json(ev, group_session))
    return response if isinstance(response, tuple) else (response, 201)


@bp.route("/<int:group_id>/events/<int:event_id>/delete", methods=["POST"])
@login_required
def delete_event(group_id, event_id):
    """Remove an event from the group calendar."""
    group_session = get_group_session()
    result = group_session.delete_event(group_id, event_id)
    return respond(result, lambda removed: {"removed": bool(removed)})


@bp.route("/<int:group_id>/events/<int:event_id>/viewed", methods=["POST"])
@login_required
def mark_event_viewed(group_id, event_id):
    """Clear the current user's unseen flag on an event."""
    group_session = get_group_session()
    if not group_session.mark_event_as_viewed(group_id, event_id):
        raise NotFoundError("Event not found.")
    return jsonify({"status": "success"})
