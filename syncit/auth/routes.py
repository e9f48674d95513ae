"""Routes for the auth blueprint."""

from firebase_admin import auth, firestore
from flask import current_app, jsonify, request, session
from flask_wtf.csrf import generate_csrf

from syncit.errors import AppError
from . import bp


@bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    """Hand the client a CSRF token to send back in the X-CSRFToken header."""
    return jsonify({"token": generate_csrf()})


@bp.route("/session_login", methods=["POST"])
def session_login():
    """
    This endpoint is called from the client after a successful Firebase login.
    It receives the ID token, verifies it, creates a server-side session and
    opens the user's group session.
    """
    id_token = (request.get_json(silent=True) or {}).get("idToken")
    try:
        decoded_token = auth.verify_id_token(id_token)
    except Exception as e:
        current_app.logger.error(f"Error during session login: {e}")
        return (
            jsonify({"status": "error", "message": "Invalid token or server error."}),
            401,
        )

    from syncit.user.services import UserService

    uid = decoded_token["uid"]
    db = firestore.client()
    profile, created = UserService.ensure_user_profile(
        db,
        uid,
        email=decoded_token.get("email") or "",
        name=decoded_token.get("name") or "",
    )
    if created:
        current_app.logger.info(f"Created profile for new user {uid}")

    sessions = current_app.extensions["group_sessions"]
    previous_uid = session.get("user_id")
    if previous_uid and previous_uid != uid:
        sessions.close(previous_uid)

    session["user_id"] = uid
    try:
        sessions.open(uid)
    except AppError as e:
        # Groups can still be loaded on demand; the listener is retried on next login.
        current_app.logger.error(f"Could not open group session for {uid}: {e.message}")
    return jsonify(
        {"status": "success", "profileComplete": bool(profile.get("phone"))}
    )


@bp.route("/logout", methods=["POST"])
def logout():
    """Close the user's group session and clear the server-side session."""
    uid = session.get("user_id")
    if uid:
        current_app.extensions["group_sessions"].close(uid)
    session.clear()
    return jsonify({"status": "success"})
