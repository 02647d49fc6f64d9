"""
Session tokens:
- Issues access/refresh JWT pairs (PyJWT, HMAC signed, distinct secrets)
- Verifies tokens taken from the request (cookie, Authorization header, query string)
- Rotates refresh tokens; server side revocation lives in the credential store

Wire claims: sub (user id as decimal string), jti (uuid), iat, exp, plus role.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

import jwt
from flask import Request, Response

from utils.errors import AppError, ErrorKind, Message

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "bearer"
ACCESS_COOKIE_NAME = "access_token"
REFRESH_COOKIE_NAME = "refresh_token"
HEADER_BEARER = "BEARER"
HEADER_TOKEN = "token"

# Only the HMAC family is accepted on decode
HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
REQUIRED_CLAIMS = ["sub", "jti", "iat", "exp"]

MSG_GENERATE_TOKENS = Message("app.generate_tokens.app_error", "could not generate token")
MSG_VERIFY_TOKEN = Message("app.verify_token.app_error", "token is invalid or has already expired")
MSG_EXTRACT_TOKEN_META = Message("app.extract_token_meta.app_error", "could not extract token meta data")
MSG_REFRESH_TOKEN = Message("app.refresh_token.app_error", "invalid refresh token")
MSG_DELETE_TOKEN = Message("app.refresh_token.delete.app_error", "could not delete old token")


class TokenLocation(Enum):
    NOT_FOUND = "not_found"
    COOKIE = "cookie"
    HEADER = "header"
    QUERY_STRING = "query_string"


@dataclass(frozen=True)
class AuthSettings:
    access_secret: str
    refresh_secret: str
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    algorithm: str = "HS256"
    cookie_secure: bool = False
    cookie_http_only: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AuthSettings":
        return cls(
            access_secret=config["ACCESS_TOKEN_SECRET"],
            refresh_secret=config["REFRESH_TOKEN_SECRET"],
            access_ttl=config.get("ACCESS_TOKEN_EXPIRES", timedelta(minutes=15)),
            refresh_ttl=config.get("REFRESH_TOKEN_EXPIRES", timedelta(days=7)),
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            cookie_secure=bool(config.get("SESSION_COOKIE_SECURE", False)),
            cookie_http_only=bool(config.get("SESSION_COOKIE_HTTPONLY", False)),
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_id: str
    refresh_id: str
    access_expires: datetime
    refresh_expires: datetime
    token_type: str = ACCESS_TOKEN_TYPE


@dataclass(frozen=True)
class AccessRecord:
    access_id: str
    user_id: int
    role: str = ""


class CredentialStore(Protocol):
    def save_auth(self, user_id: int, pair: TokenPair) -> None: ...

    def get_auth(self, record: AccessRecord) -> int: ...

    def delete_auth(self, token_id: str) -> int: ...

    def ping(self) -> bool: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _invalid(op: str, message: Message = MSG_VERIFY_TOKEN) -> AppError:
    return AppError(op, ErrorKind.INVALID, message, 401)


def extract_token_from_request(request: Request) -> Tuple[str, TokenLocation]:
    """Find the access token: cookie, then Authorization header, then ?access_token=."""
    cookie = request.cookies.get(ACCESS_COOKIE_NAME)
    if cookie:
        return cookie, TokenLocation.COOKIE

    auth_header = request.headers.get("Authorization", "")
    if len(auth_header) > 6 and auth_header[:6].upper() == HEADER_BEARER:
        return auth_header[7:].strip(), TokenLocation.HEADER
    if len(auth_header) > 5 and auth_header[:5].lower() == HEADER_TOKEN:
        return auth_header[6:].strip(), TokenLocation.HEADER

    token = request.args.get("access_token")
    if token:
        return token, TokenLocation.QUERY_STRING

    return "", TokenLocation.NOT_FOUND


class SessionManager:
    """Mints, verifies and invalidates access/refresh token pairs."""

    def __init__(
        self,
        settings: AuthSettings,
        store: CredentialStore,
        role_lookup: Optional[Callable[[int], Optional[str]]] = None,
    ):
        self.settings = settings
        self.store = store
        # Current role of an active account, None when it is gone or disabled
        self.role_lookup = role_lookup

    def _sign(self, user_id: int, role: str, ttl: timedelta, secret: str) -> Tuple[str, str, datetime]:
        token_id = str(uuid.uuid4())
        now = _now()
        exp = now + ttl
        payload = {
            "sub": str(user_id),
            "jti": token_id,
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
        if role:
            payload["role"] = role
        try:
            token = jwt.encode(payload, secret, algorithm=self.settings.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError, NotImplementedError) as exc:
            logger.error("token signing failed: %s", exc)
            raise AppError("SessionManager.IssueTokens", ErrorKind.INTERNAL, MSG_GENERATE_TOKENS, 500)
        return token, token_id, exp

    def issue_tokens(self, user_id: int, role: str = "user") -> TokenPair:
        at, at_id, at_exp = self._sign(user_id, role, self.settings.access_ttl, self.settings.access_secret)
        rt, rt_id, rt_exp = self._sign(user_id, role, self.settings.refresh_ttl, self.settings.refresh_secret)
        return TokenPair(
            access_token=at,
            refresh_token=rt,
            access_id=at_id,
            refresh_id=rt_id,
            access_expires=at_exp,
            refresh_expires=rt_exp,
        )

    def decode(self, token: str, secret: str, op: str = "SessionManager.VerifyToken") -> Dict[str, Any]:
        """
        Decode and validate a signed token against `secret`.
        Any failure (malformed, bad signature, expired, non-HMAC alg) raises the same INVALID error.
        """
        if not token:
            raise _invalid(op)
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") not in HMAC_ALGORITHMS:
                raise jwt.InvalidAlgorithmError("unexpected signing method")
            return jwt.decode(
                token,
                secret,
                algorithms=list(HMAC_ALGORITHMS),
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.PyJWTError as exc:
            logger.debug("token rejected: %s", exc)
            raise _invalid(op)

    def verify_token(self, request: Request, secret: str) -> Dict[str, Any]:
        token, _ = extract_token_from_request(request)
        return self.decode(token, secret)

    def token_valid(self, request: Request) -> None:
        self.verify_token(request, self.settings.access_secret)

    def extract_token_metadata(self, request: Request) -> AccessRecord:
        claims = self.verify_token(request, self.settings.access_secret)
        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise _invalid("SessionManager.ExtractTokenMetadata", MSG_EXTRACT_TOKEN_META)
        return AccessRecord(access_id=claims["jti"], user_id=user_id, role=claims.get("role", ""))

    def refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token: the presented token's store entry is deleted and a
        new pair is issued and saved. Only one caller can win the delete for a
        given token. With a role_lookup the new pair carries the account's
        current role, and a missing or inactive account gets no new pair.
        """
        op = "SessionManager.RefreshToken"
        claims = self.decode(refresh_token, self.settings.refresh_secret, op=op)
        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise _invalid(op, MSG_REFRESH_TOKEN)

        deleted = self.delete_auth(claims["jti"])
        if deleted == 0:
            logger.warning("refresh rejected for user %s: token %s not live", user_id, claims["jti"])
            raise AppError(op, ErrorKind.UNAUTHORIZED, MSG_DELETE_TOKEN, 401)

        role = claims.get("role", "")
        if self.role_lookup is not None:
            role = self.role_lookup(user_id)
            if role is None:
                logger.warning("refresh rejected: user %s missing or inactive", user_id)
                raise AppError(op, ErrorKind.UNAUTHORIZED, MSG_REFRESH_TOKEN, 401)

        pair = self.issue_tokens(user_id, role)
        self.save_auth(user_id, pair)
        logger.info("refreshed session for user %s", user_id)
        return pair

    def save_auth(self, user_id: int, pair: TokenPair) -> None:
        self.store.save_auth(user_id, pair)

    def get_auth(self, record: AccessRecord) -> int:
        return self.store.get_auth(record)

    def delete_auth(self, token_id: str) -> int:
        return self.store.delete_auth(token_id)

    def revoke_refresh_token(self, refresh_token: str) -> int:
        """Best effort revoke used by logout; invalid tokens revoke nothing."""
        try:
            claims = self.decode(refresh_token, self.settings.refresh_secret)
        except AppError:
            return 0
        return self.delete_auth(claims["jti"])

    def attach_session_cookies(self, response: Response, pair: TokenPair) -> None:
        response.set_cookie(
            ACCESS_COOKIE_NAME,
            pair.access_token,
            expires=pair.access_expires,
            path="/",
            secure=self.settings.cookie_secure,
            httponly=self.settings.cookie_http_only,
        )
        response.set_cookie(
            REFRESH_COOKIE_NAME,
            pair.refresh_token,
            expires=pair.refresh_expires,
            path="/",
            secure=self.settings.cookie_secure,
            httponly=self.settings.cookie_http_only,
        )


def delete_session_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE_NAME, path="/")
    response.delete_cookie(REFRESH_COOKIE_NAME, path="/")


def token_pair_out(pair: TokenPair) -> Dict[str, Any]:
    return {
        "token_type": pair.token_type,
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "access_expires": pair.access_expires.isoformat(),
        "refresh_expires": pair.refresh_expires.isoformat(),
    }
