"""
Account recovery endpoints backed by one-time tokens:
- POST /users/email/verify/send      issue an email verification token
- POST /users/email/verify           consume it, mark the email verified
- POST /users/password/reset/send    issue a password recovery token
- POST /users/password/reset         consume it, replace the password hash

The send endpoints answer 200 whether or not the email is registered.
Delivering the token (mail) is not handled here; issue_account_token is the
hook a mailer plugs into.
"""
from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from marshmallow import ValidationError

from models import storage
from models.token import TYPE_EMAIL_VERIFICATION, TYPE_PASSWORD_RECOVERY, Token
from models.user import User
from models.schemas.user import AccountTokenSchema, EmailRequestSchema, PasswordResetSchema
from utils.errors import AppError, ErrorKind, Message
from utils.security import hash_password

logger = logging.getLogger(__name__)

bp = Blueprint("account", __name__)

email_request_schema = EmailRequestSchema()
account_token_schema = AccountTokenSchema()
password_reset_schema = PasswordResetSchema()

MSG_INVALID_EMAIL = Message("api.sendVerificationEmail.email.app_error", "invalid email provided")
MSG_INVALID_TOKEN = Message("model.token.validate.app_error", "invalid token")
MSG_TOKEN_EXPIRED = Message("model.token.expired.app_error", "token has expired")


def _load_email(op: str) -> str:
    try:
        return email_request_schema.load(request.get_json(silent=True) or {})["email"]
    except ValidationError:
        raise AppError(op, ErrorKind.INVALID, MSG_INVALID_EMAIL, 400)


def issue_account_token(user: User, token_type: str, expiry_hours: int) -> Token:
    token = Token.new(token_type, user.id, expiry_hours)
    storage.new(token)
    storage.save()
    logger.info("issued %s token for user %s", token_type, user.id)
    return token


def consume_account_token(token_string: str, token_type: str, op: str) -> Token:
    """
    Delete the token and return it. The delete is a single statement so only
    one caller can consume a token. The change that uses the token must be
    committed by the caller.
    """
    session = storage.get_session()
    token = session.query(Token).filter(Token.token == token_string, Token.type == token_type).first()
    if token is None:
        raise AppError(op, ErrorKind.NOT_FOUND, MSG_INVALID_TOKEN, 404)
    if token.is_expired():
        token.delete()
        storage.save()
        raise AppError(op, ErrorKind.INVALID, MSG_TOKEN_EXPIRED, 400)

    deleted = session.query(Token).filter(Token.id == token.id).delete(synchronize_session="fetch")
    if deleted == 0:
        raise AppError(op, ErrorKind.NOT_FOUND, MSG_INVALID_TOKEN, 404)
    return token


def _find_user(email: str) -> User | None:
    return storage.get_session().query(User).filter(User.email == email).first()


@bp.post("/users/email/verify/send")
def send_verification_email():
    """
    Issue an email verification token
    ---
    tags:
      - Account
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      200: { description: OK (also for unknown emails) }
      400: { description: Invalid email }
    """
    email = _load_email("api.sendVerificationEmail")
    user = _find_user(email)
    if user and user.active and not user.email_verified:
        issue_account_token(user, TYPE_EMAIL_VERIFICATION, current_app.config["EMAIL_VERIFICATION_EXPIRY_HOURS"])
    return jsonify({"status": "OK"})


@bp.post("/users/email/verify")
def verify_email():
    """
    Verify the account email with a verification token
    ---
    tags:
      - Account
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            token: { type: string }
    responses:
      200: { description: OK }
      400: { description: Expired token }
      404: { description: Unknown or already used token }
    """
    data = account_token_schema.load(request.get_json(silent=True) or {})
    token = consume_account_token(data["token"], TYPE_EMAIL_VERIFICATION, "api.verifyUserEmail")

    user = storage.get(User, token.user_id)
    if user is None:
        storage.rollback()
        raise AppError("api.verifyUserEmail", ErrorKind.NOT_FOUND, MSG_INVALID_TOKEN, 404)
    user.email_verified = True
    user.save()
    logger.info("user %s verified email", user.id)
    return jsonify({"status": "OK"})


@bp.post("/users/password/reset/send")
def send_password_reset_email():
    """
    Issue a password recovery token
    ---
    tags:
      - Account
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      200: { description: OK (also for unknown emails) }
      400: { description: Invalid email }
    """
    email = _load_email("api.sendPasswordResetEmail")
    user = _find_user(email)
    if user and user.active:
        issue_account_token(user, TYPE_PASSWORD_RECOVERY, current_app.config["PASSWORD_RESET_EXPIRY_HOURS"])
    return jsonify({"status": "OK"})


@bp.post("/users/password/reset")
def reset_password():
    """
    Set a new password with a password recovery token
    ---
    tags:
      - Account
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            token: { type: string }
            password: { type: string }
            confirm_password: { type: string }
    responses:
      200: { description: OK }
      400: { description: Expired token }
      404: { description: Unknown or already used token }
      422: { description: Password policy not met }
    """
    data = password_reset_schema.load(request.get_json(silent=True) or {})
    # Checked before the token is consumed
    current_app.extensions["password_policy"].validate(data["password"])

    token = consume_account_token(data["token"], TYPE_PASSWORD_RECOVERY, "api.resetUserPassword")
    user = storage.get(User, token.user_id)
    if user is None:
        storage.rollback()
        raise AppError("api.resetUserPassword", ErrorKind.NOT_FOUND, MSG_INVALID_TOKEN, 404)

    # Other outstanding recovery tokens of this user die with the reset
    storage.get_session().query(Token).filter(
        Token.user_id == user.id, Token.type == TYPE_PASSWORD_RECOVERY
    ).delete(synchronize_session="fetch")
    user.password_hash = hash_password(data["password"])
    user.save()
    logger.info("user %s reset password", user.id)
    return jsonify({"status": "OK"})
