"""Routes for the user blueprint."""

import re

from firebase_admin import auth, firestore
from flask import current_app, jsonify, request, session

from syncit.auth.decorators import login_required
from syncit.errors import NotFoundError, ValidationError
from syncit.group.utils import get_group_session, validate_form

from . import bp
from .forms import ProfileForm
from .services import UserService


@bp.route("/search", methods=["GET"])
@login_required
def search_by_phone():
    """Find an app user by phone number, in any stored format."""
    phone = request.args.get("phone", "").strip()
    if not phone:
        raise ValidationError("A phone number is required.")

    db = firestore.client()
    user = UserService.search_user_by_phone_number(db, phone)
    if user is None:
        raise NotFoundError("No app user found with that phone number.")
    return jsonify({"status": "success", "data": user})


@bp.route("/fcm-token", methods=["POST"])
@login_required
def store_fcm_token():
    """Register the device token used for push notifications."""
    token = (request.get_json(silent=True) or {}).get("token")
    if not token:
        raise ValidationError("A device token is required.")

    db = firestore.client()
    UserService.store_fcm_token(db, session["user_id"], token)
    current_app.logger.info(f"Stored FCM token for user {session['user_id']}")
    return jsonify({"status": "success"})


@bp.route("/profile", methods=["GET"])
@login_required
def view_profile():
    """Return the signed-in user's profile."""
    db = firestore.client()
    profile = UserService.get_user_by_id(db, session["user_id"])
    if profile is None:
        raise NotFoundError("Profile not found.")
    return jsonify({"status": "success", "data": profile})


@bp.route("/profile", methods=["POST"])
@login_required
def save_profile():
    """Create or update the name and phone number others find the user by."""
    form = ProfileForm()
    validate_form(form)

    update_data = {"name": form.name.data.strip()}
    if form.countryCode.data:
        update_data["countryCode"] = "+" + form.countryCode.data.lstrip("+")
    if form.phone.data:
        phone = re.sub(r"\D", "", form.phone.data)
        # Stored without the national trunk prefix when a country code is set
        if update_data.get("countryCode"):
            phone = phone.lstrip("0")
        update_data["phone"] = phone

    db = firestore.client()
    profile = UserService.save_user_profile(db, session["user_id"], update_data)
    current_app.logger.info(f"Saved profile for user {session['user_id']}")
    return jsonify({"status": "success", "data": profile})


@bp.route("/delete-account", methods=["POST"])
@login_required
def delete_account():
    """Delete the user's groups, leave the rest, and remove the account."""
    uid = session["user_id"]
    db = firestore.client()
    sessions = current_app.extensions["group_sessions"]

    summary = UserService.delete_account(db, get_group_session())
    sessions.close(uid)
    try:
        auth.delete_user(uid)
    except auth.UserNotFoundError:
        current_app.logger.warning(f"Auth account for {uid} was already removed.")
    session.clear()

    current_app.logger.info(
        f"Deleted account {uid}: removed {len(summary['deletedGroups'])} groups, "
        f"left {len(summary['leftGroups'])}"
    )
    return jsonify({"status": "success", "data": summary})
