"""
Authentication endpoints:
- POST /users                 register, starts a session
- POST /users/login           starts a session
- POST /users/logout          revokes the current session
- POST /users/token/refresh   rotates the refresh token

Sessions:
- Access tokens are short lived (15 min), refresh tokens long lived (7 days), JWTs signed with
  distinct HMAC secrets
- Both token ids are stored in the credential store; a token is only usable while its id is live
- Tokens are sent back as cookies and in the response body
"""
from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from models import storage
from models.user import User
from models.schemas.user import RefreshTokenSchema, UserCreateSchema, UserLoginSchema, UserOutSchema
from models.base_model import utcnow
from utils.decorators import USER_ROLE, get_session_manager, session_required
from utils.errors import AppError, ErrorKind, Message
from utils.security import compare_password, hash_password
from utils.tokens import REFRESH_COOKIE_NAME, AccessRecord, delete_session_cookies, token_pair_out

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

user_create_schema = UserCreateSchema()
user_login_schema = UserLoginSchema()
user_out_schema = UserOutSchema()
refresh_schema = RefreshTokenSchema()

MSG_EMAIL_TAKEN = Message("app.create_user.email_taken.app_error", "email is already registered")
MSG_USERNAME_TAKEN = Message("app.create_user.username_taken.app_error", "username is already taken")
MSG_LOGIN = Message("app.login.app_error", "invalid email or password")
MSG_LOGOUT = Message("api.logout.app_error", "token is invalid or has already expired")
MSG_REFRESH_MISSING = Message("api.refresh.json.app_error", "could not decode token json data")


def _session_response(body: dict, status: int, pair):
    resp = jsonify({**body, **token_pair_out(pair)})
    resp.status_code = status
    get_session_manager().attach_session_cookies(resp, pair)
    return resp


def start_session(user: User):
    """Issue a token pair for `user` and mark its ids live in the credential store."""
    sm = get_session_manager()
    pair = sm.issue_tokens(user.id, user.role)
    sm.save_auth(user.id, pair)
    return pair


@bp.post("/users")
def register():
    """
    Register a new user and start a session
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            username: { type: string }
            password: { type: string }
            confirm_password: { type: string }
            first_name: { type: string }
            last_name: { type: string }
            locale: { type: string, example: en }
    responses:
      201:
        description: Created (session cookies set)
      409:
        description: Email or username taken
      422:
        description: Validation error
    """
    data = user_create_schema.load(request.get_json(silent=True) or {})
    current_app.extensions["password_policy"].validate(data["password"])

    session = storage.get_session()
    if session.query(User).filter(User.email == data["email"]).first():
        raise AppError("api.register", ErrorKind.CONFLICT, MSG_EMAIL_TAKEN, 409)
    if session.query(User).filter(User.username == data["username"]).first():
        raise AppError("api.register", ErrorKind.CONFLICT, MSG_USERNAME_TAKEN, 409)

    now = utcnow()
    user = User(
        email=data["email"],
        username=data["username"],
        password_hash=hash_password(data.pop("password")),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        gender=data.get("gender"),
        locale=data.get("locale") or "en",
        role=USER_ROLE,
        active=True,
        last_login_at=now,
    )
    data.pop("confirm_password", None)
    storage.new(user)
    storage.save()
    logger.info("registered user %s", user.id)

    pair = start_session(user)
    return _session_response({"data": user_out_schema.dump(user)}, 201, pair)


@bp.post("/users/login")
def login():
    """
    Login: sets access_token and refresh_token cookies and returns them
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid credentials
    """
    data = user_login_schema.load(request.get_json(silent=True) or {})

    session = storage.get_session()
    user: User = session.query(User).filter(User.email == data["email"]).first()
    if not user or not user.active or not compare_password(user.password_hash, data["password"]):
        raise AppError("api.login", ErrorKind.UNAUTHENTICATED, MSG_LOGIN, 401)

    user.last_login_at = utcnow()
    user.save()

    pair = start_session(user)
    logger.info("user %s logged in", user.id)
    return _session_response({"data": user_out_schema.dump(user)}, 200, pair)


@bp.post("/users/logout")
@session_required
def logout(access: AccessRecord):
    """
    Logout: revokes the current access token (and the refresh token if presented)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    # Body is validated before anything is revoked
    payload = refresh_schema.load(request.get_json(silent=True) or {})

    sm = get_session_manager()
    deleted = sm.delete_auth(access.access_id)
    if deleted == 0:
        raise AppError("api.logout", ErrorKind.UNAUTHENTICATED, MSG_LOGOUT, 401)

    refresh_token = payload.get("refresh_token") or request.cookies.get(REFRESH_COOKIE_NAME)
    if refresh_token:
        sm.revoke_refresh_token(refresh_token)

    logger.info("user %s logged out", access.user_id)
    resp = jsonify({"status": "OK"})
    delete_session_cookies(resp)
    return resp


@bp.post("/users/token/refresh")
def refresh():
    """
    Use a refresh token to obtain a new token pair (rotation, single use)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (new cookies set)
      401:
        description: Invalid, expired or already used refresh token
    """
    payload = refresh_schema.load(request.get_json(silent=True) or {})
    token = payload.get("refresh_token") or request.cookies.get(REFRESH_COOKIE_NAME)
    if not token:
        raise AppError("api.refresh", ErrorKind.BAD_REQUEST, MSG_REFRESH_MISSING, 400)

    pair = get_session_manager().refresh_token(token)
    return _session_response({"status": "OK"}, 200, pair)
