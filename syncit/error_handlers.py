from flask import Blueprint, current_app, jsonify
from flask_wtf.csrf import CSRFError

from .errors import AppError, NotFoundError, PermissionDeniedError, ValidationError

error_handlers_bp = Blueprint("error_handlers", __name__)


def error_response(message, status_code):
    """Render an error as the JSON body every endpoint uses."""
    return jsonify({"status": "error", "message": message}), status_code


@error_handlers_bp.app_errorhandler(ValidationError)
def handle_validation_error(error):
    """Handles validation errors."""
    current_app.logger.warning(f"Validation Error: {error.message}")
    return error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(PermissionDeniedError)
def handle_permission_error(error):
    """Handles attempts to act on a group without the required role."""
    current_app.logger.warning(f"Permission Error: {error.message}")
    return error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(NotFoundError)
def handle_not_found_error(error):
    """Handles not found errors."""
    current_app.logger.warning(f"Not Found Error: {error.message}")
    return error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(AppError)
def handle_app_error(error):
    """Handles generic application errors, including backend failures."""
    current_app.logger.error(f"Application Error: {error.message}")
    return error_response(error.message, error.status_code)


@error_handlers_bp.app_errorhandler(404)
def handle_404(e):
    """Handles generic 404 errors for routes that don't exist."""
    return error_response("Not found.", 404)


@error_handlers_bp.app_errorhandler(500)
def handle_500(e):
    """Handles unexpected server errors."""
    current_app.logger.error(f"Internal Server Error: {e}")
    return error_response("Something went wrong. Please try again.", 500)


@error_handlers_bp.app_errorhandler(CSRFError)
def handle_csrf_error(e):
    """
    Handles CSRF errors, which usually indicate a session timeout or a missing token.
    """
    current_app.logger.warning(f"CSRF Error: {e.description}")
    return error_response("Your session may have expired. Please try again.", 400)
