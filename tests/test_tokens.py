"""Unit tests for the session manager (token issue, verify, refresh, revoke)."""

import threading
import time
import uuid
from datetime import timedelta

import jwt
import pytest
from werkzeug.test import EnvironBuilder

from utils.errors import AppError, ErrorKind
from utils.tokens import (
    AccessRecord,
    AuthSettings,
    SessionManager,
    TokenLocation,
    extract_token_from_request,
)


def make_request(token=None, where="cookie"):
    headers = {}
    query = {}
    if token is not None:
        if where == "cookie":
            headers["Cookie"] = f"access_token={token}"
        elif where == "header":
            headers["Authorization"] = f"Bearer {token}"
        elif where == "query":
            query["access_token"] = token
    return EnvironBuilder(path="/", headers=headers, query_string=query).get_request()


def decode(token, secret):
    return jwt.decode(token, secret, algorithms=["HS256"])


class TestIssueTokens:
    def test_claims_carry_subject_and_ids(self, session_manager, settings):
        pair = session_manager.issue_tokens(42)

        access = decode(pair.access_token, settings.access_secret)
        refresh = decode(pair.refresh_token, settings.refresh_secret)

        assert access["sub"] == "42"
        assert refresh["sub"] == "42"
        assert access["jti"] == pair.access_id
        assert refresh["jti"] == pair.refresh_id
        assert pair.access_id != pair.refresh_id
        uuid.UUID(access["jti"])
        assert pair.token_type == "bearer"

    def test_access_expires_before_refresh(self, session_manager, settings):
        pair = session_manager.issue_tokens(7)

        access = decode(pair.access_token, settings.access_secret)
        refresh = decode(pair.refresh_token, settings.refresh_secret)

        assert access["iat"] < access["exp"]
        assert access["exp"] < refresh["exp"]
        assert access["exp"] - access["iat"] == 15 * 60
        assert refresh["exp"] - refresh["iat"] == 7 * 24 * 3600
        assert pair.access_expires < pair.refresh_expires

    def test_tokens_are_signed_with_distinct_secrets(self, session_manager, settings):
        pair = session_manager.issue_tokens(1)
        with pytest.raises(jwt.InvalidSignatureError):
            decode(pair.access_token, settings.refresh_secret)
        with pytest.raises(jwt.InvalidSignatureError):
            decode(pair.refresh_token, settings.access_secret)

    def test_every_issue_uses_fresh_ids(self, session_manager):
        a = session_manager.issue_tokens(1)
        b = session_manager.issue_tokens(1)
        assert len({a.access_id, a.refresh_id, b.access_id, b.refresh_id}) == 4

    def test_role_claim_is_embedded(self, session_manager, settings):
        pair = session_manager.issue_tokens(3, "admin")
        assert decode(pair.access_token, settings.access_secret)["role"] == "admin"

    def test_signing_failure_is_internal(self, memory_store):
        sm = SessionManager(AuthSettings("a", "b", algorithm="HS999"), memory_store)
        with pytest.raises(AppError) as exc:
            sm.issue_tokens(1)
        assert exc.value.kind == ErrorKind.INTERNAL
        assert exc.value.status_code == 500


class TestExtractTokenFromRequest:
    @pytest.mark.parametrize(
        "where,location",
        [("cookie", TokenLocation.COOKIE), ("header", TokenLocation.HEADER), ("query", TokenLocation.QUERY_STRING)],
    )
    def test_locations(self, where, location):
        token, loc = extract_token_from_request(make_request("abc.def.ghi", where))
        assert token == "abc.def.ghi"
        assert loc == location

    def test_cookie_wins_over_header(self):
        req = EnvironBuilder(
            path="/", headers={"Cookie": "access_token=from-cookie", "Authorization": "Bearer from-header"}
        ).get_request()
        assert extract_token_from_request(req) == ("from-cookie", TokenLocation.COOKIE)

    def test_lowercase_bearer_and_token_scheme(self):
        req = EnvironBuilder(path="/", headers={"Authorization": "bearer t1"}).get_request()
        assert extract_token_from_request(req) == ("t1", TokenLocation.HEADER)
        req = EnvironBuilder(path="/", headers={"Authorization": "token t2"}).get_request()
        assert extract_token_from_request(req) == ("t2", TokenLocation.HEADER)

    def test_missing_token(self):
        assert extract_token_from_request(make_request()) == ("", TokenLocation.NOT_FOUND)


class TestVerifyToken:
    def test_round_trip_metadata(self, session_manager):
        pair = session_manager.issue_tokens(7, "user")

        record = session_manager.extract_token_metadata(make_request(pair.access_token))

        assert record == AccessRecord(access_id=pair.access_id, user_id=7, role="user")

    def test_token_valid_accepts_header_token(self, session_manager):
        pair = session_manager.issue_tokens(7)
        assert session_manager.token_valid(make_request(pair.access_token, "header")) is None

    def test_wrong_secret_is_rejected_every_time(self, session_manager):
        other = SessionManager(AuthSettings("other-access", "other-refresh"), session_manager.store)
        pair = other.issue_tokens(7)

        for _ in range(3):
            with pytest.raises(AppError) as exc:
                session_manager.verify_token(make_request(pair.access_token), session_manager.settings.access_secret)
            assert exc.value.kind == ErrorKind.INVALID
            assert exc.value.status_code == 401

    def test_refresh_token_is_not_an_access_token(self, session_manager):
        pair = session_manager.issue_tokens(7)
        with pytest.raises(AppError) as exc:
            session_manager.token_valid(make_request(pair.refresh_token))
        assert exc.value.kind == ErrorKind.INVALID

    def test_unsigned_token_is_rejected(self, session_manager):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "7", "jti": str(uuid.uuid4()), "iat": now, "exp": now + 60}, None, algorithm="none"
        )
        with pytest.raises(AppError) as exc:
            session_manager.token_valid(make_request(token))
        assert exc.value.kind == ErrorKind.INVALID

    def test_expired_token_is_rejected(self, session_manager, settings):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "7", "jti": str(uuid.uuid4()), "iat": now - 120, "exp": now - 60},
            settings.access_secret,
            algorithm="HS256",
        )
        with pytest.raises(AppError) as exc:
            session_manager.token_valid(make_request(token))
        assert exc.value.kind == ErrorKind.INVALID

    def test_missing_claims_are_rejected(self, session_manager, settings):
        token = jwt.encode({"sub": "7"}, settings.access_secret, algorithm="HS256")
        with pytest.raises(AppError):
            session_manager.token_valid(make_request(token))

    def test_failures_share_one_message(self, session_manager, settings):
        messages = set()
        for token in ["", "garbage", jwt.encode({"sub": "1"}, "nope", algorithm="HS256")]:
            with pytest.raises(AppError) as exc:
                session_manager.token_valid(make_request(token))
            messages.add(exc.value.message)
        assert messages == {"token is invalid or has already expired"}

    def test_non_integer_subject_is_invalid(self, session_manager, settings):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "bob", "jti": str(uuid.uuid4()), "iat": now, "exp": now + 60},
            settings.access_secret,
            algorithm="HS256",
        )
        with pytest.raises(AppError) as exc:
            session_manager.extract_token_metadata(make_request(token))
        assert exc.value.kind == ErrorKind.INVALID


class TestSessionStore:
    def test_saved_session_is_found(self, session_manager):
        pair = session_manager.issue_tokens(7)
        session_manager.save_auth(7, pair)

        record = session_manager.extract_token_metadata(make_request(pair.access_token))
        assert session_manager.get_auth(record) == 7

    def test_unsaved_session_is_not_found(self, session_manager):
        pair = session_manager.issue_tokens(7)
        record = session_manager.extract_token_metadata(make_request(pair.access_token))

        with pytest.raises(AppError) as exc:
            session_manager.get_auth(record)
        assert exc.value.kind == ErrorKind.NOT_FOUND
        assert exc.value.status_code == 401

    def test_revocation_keeps_signature_valid_but_session_gone(self, session_manager):
        pair = session_manager.issue_tokens(7)
        session_manager.save_auth(7, pair)

        assert session_manager.delete_auth(pair.access_id) == 1

        record = session_manager.extract_token_metadata(make_request(pair.access_token))
        with pytest.raises(AppError):
            session_manager.get_auth(record)

    def test_delete_twice_counts_once(self, session_manager):
        pair = session_manager.issue_tokens(7)
        session_manager.save_auth(7, pair)
        assert session_manager.delete_auth(pair.access_id) == 1
        assert session_manager.delete_auth(pair.access_id) == 0


class TestRefreshToken:
    def test_refresh_rotates_the_pair(self, session_manager, settings):
        pair = session_manager.issue_tokens(7, "user")
        session_manager.save_auth(7, pair)

        new_pair = session_manager.refresh_token(pair.refresh_token)

        assert new_pair.access_id != pair.access_id
        assert new_pair.refresh_id != pair.refresh_id
        claims = decode(new_pair.access_token, settings.access_secret)
        assert claims["sub"] == "7"
        assert claims["role"] == "user"
        record = session_manager.extract_token_metadata(make_request(new_pair.access_token))
        assert session_manager.get_auth(record) == 7

    def test_refresh_token_is_single_use(self, session_manager):
        pair = session_manager.issue_tokens(7)
        session_manager.save_auth(7, pair)
        session_manager.refresh_token(pair.refresh_token)

        with pytest.raises(AppError) as exc:
            session_manager.refresh_token(pair.refresh_token)
        assert exc.value.kind == ErrorKind.UNAUTHORIZED
        assert exc.value.status_code == 401

    def test_never_stored_refresh_token_is_unauthorized(self, session_manager):
        pair = session_manager.issue_tokens(7)
        with pytest.raises(AppError) as exc:
            session_manager.refresh_token(pair.refresh_token)
        assert exc.value.kind == ErrorKind.UNAUTHORIZED

    def test_access_token_cannot_refresh(self, session_manager):
        pair = session_manager.issue_tokens(7)
        session_manager.save_auth(7, pair)
        with pytest.raises(AppError) as exc:
            session_manager.refresh_token(pair.access_token)
        assert exc.value.kind == ErrorKind.INVALID

    def test_concurrent_refresh_has_exactly_one_winner(self, session_manager):
        pair = session_manager.issue_tokens(7)
        session_manager.save_auth(7, pair)

        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                outcome = session_manager.refresh_token(pair.refresh_token)
            except AppError as exc:
                outcome = exc
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        wins = [r for r in results if not isinstance(r, AppError)]
        losses = [r for r in results if isinstance(r, AppError)]
        assert len(wins) == 1
        assert len(losses) == workers - 1
        assert all(e.kind == ErrorKind.UNAUTHORIZED for e in losses)

    def test_refresh_takes_current_role_from_lookup(self, settings, memory_store):
        sm = SessionManager(settings, memory_store, role_lookup=lambda user_id: "user")
        pair = sm.issue_tokens(7, "admin")
        sm.save_auth(7, pair)

        new_pair = sm.refresh_token(pair.refresh_token)

        assert decode(new_pair.access_token, settings.access_secret)["role"] == "user"

    def test_refresh_for_missing_account_is_unauthorized(self, settings, memory_store):
        sm = SessionManager(settings, memory_store, role_lookup=lambda user_id: None)
        pair = sm.issue_tokens(7, "user")
        sm.save_auth(7, pair)

        with pytest.raises(AppError) as exc:
            sm.refresh_token(pair.refresh_token)

        assert exc.value.kind == ErrorKind.UNAUTHORIZED
        assert exc.value.status_code == 401
        # the presented token is spent even though no pair was issued
        assert memory_store.delete_auth(pair.refresh_id) == 0

    def test_revoke_refresh_token_ignores_garbage(self, session_manager):
        assert session_manager.revoke_refresh_token("garbage") == 0


class TestAuthSettings:
    def test_from_config_defaults(self):
        s = AuthSettings.from_config({"ACCESS_TOKEN_SECRET": "a", "REFRESH_TOKEN_SECRET": "b"})
        assert s.access_ttl == timedelta(minutes=15)
        assert s.refresh_ttl == timedelta(days=7)
        assert s.algorithm == "HS256"
