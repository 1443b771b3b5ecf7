"""Tests for registration, login and session handling."""

from tests.fakes import api_error

API = "/api/v1/auth"


class TestRegisterLogin:
    def test_register(self, client, fake):
        response = client.post(f"{API}/register", json={
            "email": "dana@example.com", "password": "secret123", "full_name": "Dana",
        })

        assert response.status_code == 201
        assert response.json()["email"] == "dana@example.com"
        assert fake.auth.users["dana@example.com"].user_metadata == {"full_name": "Dana"}

    def test_register_duplicate(self, client, alice):
        response = client.post(f"{API}/register", json={"email": alice.email, "password": "secret123"})
        assert response.status_code == 400
        assert response.json()["detail"] == "User already exists"

    def test_login_then_me(self, client, alice, bob, family_of):
        family_of(bob, "Joneses", members=[(alice, "child")])
        family_of(alice, "Smiths")

        login = client.post(f"{API}/login", json={"email": alice.email, "password": "secret123"})
        assert login.status_code == 200
        token = login.json()["access_token"]
        assert login.json()["user_id"] == alice.id

        me = client.get(f"{API}/me", headers={"Authorization": f"Bearer {token}"})

        assert me.status_code == 200
        body = me.json()
        assert body["email"] == alice.email
        assert body["user_metadata"]["full_name"] == "Alice Smith"
        assert sorted((f["family_name"], f["role"]) for f in body["families"]) == [
            ("Joneses", "child"), ("Smiths", "admin"),
        ]

    def test_login_wrong_password(self, client, alice):
        response = client.post(f"{API}/login", json={"email": alice.email, "password": "nope"})
        assert response.status_code == 401


class TestCurrentUser:
    def test_user_lookup_is_cached(self, client, fake, alice):
        client.get(f"{API}/me", headers=alice.headers)
        client.get(f"{API}/me", headers=alice.headers)
        assert fake.auth.get_user_calls == 1

    def test_logout_drops_cached_user(self, client, fake, alice):
        client.get(f"{API}/me", headers=alice.headers)

        response = client.post(f"{API}/logout", headers=alice.headers)
        client.get(f"{API}/me", headers=alice.headers)

        assert response.status_code == 200
        assert fake.auth.sign_out_calls == 1
        assert fake.auth.get_user_calls == 2


class TestSession:
    def test_valid_session(self, client, alice):
        response = client.get(f"{API}/session", headers=alice.headers)

        assert response.status_code == 200
        assert response.json() == {"valid": True, "user_id": alice.id, "error": None, "attempts": 1}

    def test_retries_while_jwt_is_not_accepted(self, client, fake, alice):
        fake.fail_rpc("function_exists", api_error("PGRST301", "JWT expired"), times=1)

        response = client.get(f"{API}/session", headers=alice.headers)

        assert response.json()["valid"] is True
        assert response.json()["attempts"] == 2

    def test_other_errors_are_reported(self, client, fake, alice):
        fake.fail_rpc("function_exists", api_error("42501", "permission denied"))

        body = client.get(f"{API}/session", headers=alice.headers).json()

        assert body["valid"] is False
        assert body["attempts"] == 1
        assert body["error"] == "Session validation error: permission denied"

    def test_invalid_token(self, client):
        body = client.get(f"{API}/session", headers={"Authorization": "Bearer bogus"}).json()
        assert body["valid"] is False
        assert body["error"] == "Invalid or expired token"
