from __future__ import annotations

from functools import wraps

from flask import current_app, request

from utils.errors import AppError, ErrorKind, Message
from utils.tokens import AccessRecord, SessionManager

ADMIN_ROLE = "admin"
USER_ROLE = "user"

MSG_ADMIN_REQUIRED = Message("api.admin_session_required.app_error", "insufficient permissions")


def get_session_manager() -> SessionManager:
    return current_app.extensions["session_manager"]


def authenticate() -> AccessRecord:
    """
    Resolve the caller from the request: signature/expiry check, claims
    extraction, then a live entry in the credential store. The first
    failure is raised as-is.
    """
    sm = get_session_manager()
    sm.token_valid(request)
    access = sm.extract_token_metadata(request)
    sm.get_auth(access)
    return access


def session_required(fn):
    """Run the view only for a live session; the view receives `access=AccessRecord`."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        access = authenticate()
        return fn(*args, access=access, **kwargs)

    return wrapper


def admin_session_required(fn):
    """Same as session_required, and the session role must be admin (403 otherwise)."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        access = authenticate()
        if access.role != ADMIN_ROLE:
            raise AppError("AdminSessionRequired", ErrorKind.UNAUTHORIZED, MSG_ADMIN_REQUIRED, 403)
        return fn(*args, access=access, **kwargs)

    return wrapper
