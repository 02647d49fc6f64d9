from __future__ import annotations

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, abort, current_app

from models import storage
from models.user import User
from models.schemas.user import PasswordChangeSchema, RoleUpdateSchema, UserOutSchema, UserPatchSchema
from utils.decorators import admin_session_required, get_session_manager, session_required
from utils.errors import AppError, ErrorKind, Message
from utils.security import compare_password, hash_password
from utils.tokens import AccessRecord

logger = logging.getLogger(__name__)

MAX_LIMIT = 100

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)
password_change_schema = PasswordChangeSchema()
role_update_schema = RoleUpdateSchema()
user_patch_schema = UserPatchSchema()

MSG_USER_NOT_FOUND = Message("store.user.get.app_error", "user not found")
MSG_COMPARE_PWD = Message("app.compare_password.app_error", "incorrect password")
MSG_EMAIL_TAKEN = Message("app.patch_user.email_taken.app_error", "email is already registered")
MSG_USERNAME_TAKEN = Message("app.patch_user.username_taken.app_error", "username is already taken")

SORT_COLUMNS = {
    "id": User.id,
    "username": User.username,
    "email": User.email,
    "created_at": User.created_at,
}


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_sort(default="id"):
    sort = request.args.get("sort", default)
    desc = sort.startswith("-")
    key = sort[1:] if desc else sort
    col = SORT_COLUMNS.get(key)
    if col is None:
        abort(400, description=f"Unsupported sort field. Allowed: {', '.join(SORT_COLUMNS)}")
    return (col.desc() if desc else col.asc(),)


def get_user_or_404(user_id: int) -> User:
    user = storage.get(User, user_id)
    if not user:
        raise AppError("api.getUser", ErrorKind.NOT_FOUND, MSG_USER_NOT_FOUND, 404)
    return user


@bp.get("/users/me")
@session_required
def me(access: AccessRecord):
    """
    Get current user info
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = get_user_or_404(access.user_id)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.patch("/users/me")
@session_required
def patch_me(access: AccessRecord):
    """
    Update own profile (only the fields sent are changed)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             first_name: { type: string }
             last_name: { type: string }
             username: { type: string }
             email: { type: string }
             gender: { type: string, enum: [m, f] }
             locale: { type: string }
    responses:
      200: { description: OK }
      409: { description: Email or username taken }
      422: { description: Validation error }
    """
    data = user_patch_schema.load(request.get_json(silent=True) or {})
    user = get_user_or_404(access.user_id)
    session = storage.get_session()

    if "email" in data and data["email"] != user.email:
        if session.query(User).filter(User.email == data["email"], User.id != user.id).first():
            raise AppError("api.patchUserProfile", ErrorKind.CONFLICT, MSG_EMAIL_TAKEN, 409)
        # A new address has to be verified again
        user.email_verified = False
    if "username" in data and data["username"] != user.username:
        if session.query(User).filter(User.username == data["username"], User.id != user.id).first():
            raise AppError("api.patchUserProfile", ErrorKind.CONFLICT, MSG_USERNAME_TAKEN, 409)

    for key, value in data.items():
        setattr(user, key, value)
    user.save()
    logger.info("user %s updated profile fields %s", user.id, sorted(data))
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.get("/users/protected")
@session_required
def protected(access: AccessRecord):
    """
    Session check: echoes the caller's user id
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
    """
    return jsonify({"userID": access.user_id}), 200


@bp.patch("/users/me/password")
@session_required
def change_password(access: AccessRecord):
    """
    Change own password (old password required)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             old_password: { type: string }
             password: { type: string }
             confirm_password: { type: string }
    responses:
      200: { description: OK }
      400: { description: Old password does not match }
      422: { description: Password policy not met }
    """
    data = password_change_schema.load(request.get_json(silent=True) or {})
    user = get_user_or_404(access.user_id)
    if not compare_password(user.password_hash, data["old_password"]):
        raise AppError("api.changePassword", ErrorKind.CONFLICT, MSG_COMPARE_PWD, 400)
    current_app.extensions["password_policy"].validate(data["password"])

    user.password_hash = hash_password(data["password"])
    user.save()
    logger.info("user %s changed password", user.id)
    return jsonify({"status": "OK"}), 200


@bp.get("/users")
@admin_session_required
def list_users(access: AccessRecord):
    """
    List users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
      - in: query
        name: sort
        type: string
        default: id
    responses:
      200: { description: OK }
      403: { description: Forbidden }
    """
    session = storage.get_session()
    page, limit = parse_pagination()
    order_by = parse_sort()

    query = session.query(User)
    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.get("/users/<int:user_id>")
@admin_session_required
def get_user(user_id: int, access: AccessRecord):
    """
    Get a user by id - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: integer
        required: true
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": user_out_schema.dump(get_user_or_404(user_id))})


@bp.patch("/users/<int:user_id>/role")
@admin_session_required
def set_role(user_id: int, access: AccessRecord):
    """
    Set a user's role - admin. Takes effect at the user's next login/refresh.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: integer
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             role: { type: string, enum: [user, admin] }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    data = role_update_schema.load(request.get_json(silent=True) or {})
    user = get_user_or_404(user_id)
    user.role = data["role"]
    user.save()
    logger.info("admin %s set role of user %s to %s", access.user_id, user.id, user.role)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<int:user_id>")
@admin_session_required
def delete_user(user_id: int, access: AccessRecord):
    """
    Delete a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: integer
        required: true
    responses:
      204: { description: Deleted }
      404: { description: Not found }
    """
    user = get_user_or_404(user_id)
    # The deleted user's own session (if it is the caller's) dies with it
    if user.id == access.user_id:
        get_session_manager().delete_auth(access.access_id)
    user.delete()
    storage.save()
    logger.info("admin %s deleted user %s", access.user_id, user_id)
    return ("", 204)
