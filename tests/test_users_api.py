import jwt

from conftest import PASSWORD, bearer


def login_as(app, email, password=PASSWORD):
    """Log in on a fresh client so sessions of different users never share a cookie jar."""
    client = app.test_client()
    resp = client.post("/api/v1/users/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client, resp.get_json()


class TestMe:
    def test_me(self, app, make_user):
        user = make_user()
        client, _ = login_as(app, "jane@example.com")

        resp = client.get("/api/v1/users/me")

        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == user.id
        assert resp.get_json()["data"]["username"] == "jane"

    def test_me_without_token(self, client):
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "token is invalid or has already expired"

    def test_protected_echoes_user_id(self, app, make_user):
        user = make_user()
        _, tokens = login_as(app, "jane@example.com")

        resp = app.test_client().get("/api/v1/users/protected", headers=bearer(tokens["access_token"]))

        assert resp.status_code == 200
        assert resp.get_json() == {"userID": user.id}

    def test_bearer_token_with_wrong_secret(self, app, make_user):
        make_user()
        _, tokens = login_as(app, "jane@example.com")
        tampered = tokens["access_token"][:-2] + ("AA" if not tokens["access_token"].endswith("AA") else "BB")

        resp = app.test_client().get("/api/v1/users/protected", headers=bearer(tampered))
        assert resp.status_code == 401


class TestChangePassword:
    def test_change_password(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")

        resp = client.patch(
            "/api/v1/users/me/password",
            json={"old_password": PASSWORD, "password": "Better456?", "confirm_password": "Better456?"},
        )

        assert resp.status_code == 200
        login_as(app, "jane@example.com", "Better456?")
        old = app.test_client().post("/api/v1/users/login", json={"email": "jane@example.com", "password": PASSWORD})
        assert old.status_code == 401

    def test_wrong_old_password(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")
        resp = client.patch(
            "/api/v1/users/me/password",
            json={"old_password": "Nope123!", "password": "Better456?", "confirm_password": "Better456?"},
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "CONFLICT"

    def test_new_password_must_meet_policy(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")
        resp = client.patch(
            "/api/v1/users/me/password",
            json={"old_password": PASSWORD, "password": "weakpass", "confirm_password": "weakpass"},
        )
        assert resp.status_code == 422


class TestAdminUsers:
    def test_user_cannot_list(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")
        resp = client.get("/api/v1/users")
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "UNAUTHORIZED"

    def test_admin_lists_with_pagination(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        for i in range(3):
            make_user(email=f"u{i}@example.com", username=f"u{i}")
        client, _ = login_as(app, "boss@example.com")

        resp = client.get("/api/v1/users?limit=2&page=2&sort=-id")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["meta"] == {"page": 2, "limit": 2, "total": 4}
        assert len(body["data"]) == 2
        assert body["data"][0]["id"] > body["data"][1]["id"]

    def test_bad_sort_field(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        client, _ = login_as(app, "boss@example.com")
        assert client.get("/api/v1/users?sort=password_hash").status_code == 400

    def test_get_user_and_404(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        jane = make_user()
        client, _ = login_as(app, "boss@example.com")

        assert client.get(f"/api/v1/users/{jane.id}").get_json()["data"]["email"] == "jane@example.com"
        missing = client.get("/api/v1/users/9999")
        assert missing.status_code == 404
        assert missing.get_json()["message"] == "user not found"

    def test_role_change_applies_at_next_login(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        jane = make_user()
        admin, _ = login_as(app, "boss@example.com")
        jane_client, _ = login_as(app, "jane@example.com")

        resp = admin.patch(f"/api/v1/users/{jane.id}/role", json={"role": "admin"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["role"] == "admin"

        assert jane_client.get("/api/v1/users").status_code == 403
        jane_client, _ = login_as(app, "jane@example.com")
        assert jane_client.get("/api/v1/users").status_code == 200

    def test_demotion_applies_at_next_refresh(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        jane = make_user(role="admin")
        admin, _ = login_as(app, "boss@example.com")
        _, tokens = login_as(app, "jane@example.com")

        assert admin.patch(f"/api/v1/users/{jane.id}/role", json={"role": "user"}).status_code == 200

        resp = app.test_client().post("/api/v1/users/token/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        claims = jwt.decode(resp.get_json()["access_token"], app.config["ACCESS_TOKEN_SECRET"], algorithms=["HS256"])
        assert claims["role"] == "user"
        listing = app.test_client().get("/api/v1/users", headers=bearer(resp.get_json()["access_token"]))
        assert listing.status_code == 403

    def test_deleted_user_cannot_refresh(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        jane_id = make_user().id
        admin, _ = login_as(app, "boss@example.com")
        _, tokens = login_as(app, "jane@example.com")

        assert admin.delete(f"/api/v1/users/{jane_id}").status_code == 204

        resp = app.test_client().post("/api/v1/users/token/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "UNAUTHORIZED"

    def test_deactivated_user_cannot_refresh(self, app, make_user):
        jane = make_user()
        _, tokens = login_as(app, "jane@example.com")
        jane.active = False
        jane.save()

        resp = app.test_client().post("/api/v1/users/token/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401

    def test_invalid_role(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        jane = make_user()
        admin, _ = login_as(app, "boss@example.com")
        assert admin.patch(f"/api/v1/users/{jane.id}/role", json={"role": "root"}).status_code == 422

    def test_delete_user(self, app, make_user):
        make_user(email="boss@example.com", username="boss", role="admin")
        jane = make_user()
        jane_id = jane.id
        admin, _ = login_as(app, "boss@example.com")

        assert admin.delete(f"/api/v1/users/{jane_id}").status_code == 204
        assert admin.get(f"/api/v1/users/{jane_id}").status_code == 404
        assert admin.delete(f"/api/v1/users/{jane_id}").status_code == 404


class TestPatchProfile:
    def test_patch_changes_only_given_fields(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")

        resp = client.patch("/api/v1/users/me", json={"first_name": "Janet", "locale": "fr"})

        assert resp.status_code == 200, resp.get_json()
        data = resp.get_json()["data"]
        assert data["first_name"] == "Janet"
        assert data["locale"] == "fr"
        assert data["username"] == "jane"
        assert data["email"] == "jane@example.com"

    def test_username_taken_by_someone_else(self, app, make_user):
        make_user()
        make_user(email="john@example.com", username="john")
        client, _ = login_as(app, "jane@example.com")

        resp = client.patch("/api/v1/users/me", json={"username": "john"})
        assert resp.status_code == 409
        assert resp.get_json()["message"] == "username is already taken"

    def test_own_username_is_not_a_conflict(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")
        assert client.patch("/api/v1/users/me", json={"username": "jane"}).status_code == 200

    def test_email_change_resets_verification(self, app, make_user):
        jane = make_user()
        jane.email_verified = True
        jane.save()
        client, _ = login_as(app, "jane@example.com")

        resp = client.patch("/api/v1/users/me", json={"email": " Jane.New@Example.com"})

        assert resp.status_code == 200, resp.get_json()
        data = resp.get_json()["data"]
        assert data["email"] == "jane.new@example.com"
        assert data["email_verified"] is False
        login_as(app, "jane.new@example.com")

    def test_email_taken_by_someone_else(self, app, make_user):
        make_user()
        make_user(email="john@example.com", username="john")
        client, _ = login_as(app, "jane@example.com")
        resp = client.patch("/api/v1/users/me", json={"email": "john@example.com"})
        assert resp.status_code == 409

    def test_invalid_fields(self, app, make_user):
        make_user()
        client, _ = login_as(app, "jane@example.com")
        assert client.patch("/api/v1/users/me", json={"locale": "not a locale"}).status_code == 422
        assert client.patch("/api/v1/users/me", json={"gender": "x"}).status_code == 422
        assert client.patch("/api/v1/users/me", json={"role": "admin"}).status_code == 422

    def test_patch_requires_session(self, client):
        assert client.patch("/api/v1/users/me", json={"first_name": "X"}).status_code == 401
