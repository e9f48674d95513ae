"""Initialize the Flask app and its extensions."""

import json
import os

import firebase_admin
from firebase_admin import credentials, firestore
from flask import Flask, current_app, g, session
from werkzeug.middleware.proxy_fix import ProxyFix

from .extensions import csrf


def _env_flag(name, default):
    """Read a boolean flag from the environment."""
    return (os.environ.get(name) or default).lower() in ["true", "1", "t"]


def _init_firebase(app):
    """Initialize the Firebase Admin SDK from the environment, a file, or defaults."""
    cred = None
    project_id = None

    # First, try to load from environment variable (for production)
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id")
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    # If env var fails or is not present, try loading from file (for local dev)
    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    cred_info = json.load(f)
                project_id = cred_info.get("project_id")
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    # If both methods fail, fallback to default credentials
    if not cred:
        try:
            cred = credentials.ApplicationDefault()
            project_id = os.environ.get("FIREBASE_PROJECT_ID")
        except Exception as e:
            app.logger.error(
                f"Could not find any valid credentials (env, file, or default): {e}"
            )

    if cred and not firebase_admin._apps:
        try:
            options = {"projectId": project_id} if project_id else None
            firebase_admin.initialize_app(cred, options)
        except ValueError:
            # This can happen if the app is already initialized, which is fine.
            app.logger.info("Firebase app already initialized.")


def _make_session_registry(app):
    """Build the per-user group session registry for this app."""
    from .backend import DocumentStore
    from .group.services import GroupSession, MembershipStore, SessionRegistry
    from .notifications import NotificationService

    def factory(user_id):
        db = firestore.client()
        notifications = NotificationService(
            db, logger=app.logger, enabled=app.config["NOTIFICATIONS_ENABLED"]
        )
        membership = MembershipStore(
            DocumentStore(db), notifications=notifications, logger=app.logger
        )
        return GroupSession(
            membership, user_id, live=app.config["LIVE_UPDATES"], logger=app.logger
        )

    return SessionRegistry(
        factory, max_idle=app.config["GROUP_SESSION_IDLE_TIMEOUT"], logger=app.logger
    )


def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        # Push notifications through Firebase Cloud Messaging
        NOTIFICATIONS_ENABLED=_env_flag("NOTIFICATIONS_ENABLED", "true"),
        # Keep a real-time listener open for every signed-in user
        LIVE_UPDATES=_env_flag("LIVE_UPDATES", "true"),
        # Seconds before an unused group session and its listener are closed
        GROUP_SESSION_IDLE_TIMEOUT=int(
            os.environ.get("GROUP_SESSION_IDLE_TIMEOUT") or 3600
        ),
    )

    if test_config:
        app.config.update(test_config)

    # Initialize Firebase Admin SDK only if not in testing mode
    if not app.config.get("TESTING"):
        _init_firebase(app)

    # Initialize extensions
    csrf.init_app(app)
    app.extensions["group_sessions"] = _make_session_registry(app)

    # Register blueprints
    from . import auth as auth_bp

    app.register_blueprint(auth_bp.bp)

    from . import group as group_bp

    app.register_blueprint(group_bp.bp)

    from . import user as user_bp

    app.register_blueprint(user_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    @app.before_request
    def load_logged_in_user():
        """Load the signed-in user's profile from Firestore into g.user."""
        user_id = session.get("user_id")
        g.user = None
        if user_id is None:
            return

        try:
            db = firestore.client()
            user_doc = db.collection("users").document(user_id).get()
            if user_doc.exists:
                g.user = user_doc.to_dict()
                g.user["uid"] = user_id  # Ensure uid is in the user object
            else:
                # User ID in session but no user in DB. Clear the session.
                session.clear()
                current_app.logger.warning(
                    f"User {user_id} in session but not found in Firestore."
                )
        except Exception as e:
            current_app.logger.error(f"Error loading user from session: {e}")
            session.clear()  # Clear session on error to be safe

    @app.route("/health")
    def health_check():
        """Perform a simple health check."""
        return "OK", 200

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
