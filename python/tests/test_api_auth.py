"""Tests for the signup helper endpoints under /api/auth.

Tests cover:
- check-email input validation
- Auth provider lookups (exists, provider, email_confirmed)
- Fallback to the users table when the provider is unavailable
- resend-verification redirect and failure handling
"""

from casefile.auth.provider import AuthProviderError
from tests.factories import create_test_user

CHECK_URL = "/api/auth/check-email"
RESEND_URL = "/api/auth/resend-verification"


class TestCheckEmailValidation:
    def test_missing_email(self, client):
        response = client.post(CHECK_URL, json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Email is required"}

    def test_non_json_body(self, client):
        response = client.post(
            CHECK_URL, content=b"email=x", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Email is required"}

    def test_invalid_format(self, client):
        response = client.post(CHECK_URL, json={"email": "not-an-email"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid email format"}


class TestCheckEmail:
    def test_unknown_email(self, client):
        response = client.post(CHECK_URL, json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert response.json() == {"exists": False, "provider": None}

    def test_known_to_provider(self, client, auth_provider):
        auth_provider.add_user("watson@example.com", provider="google", email_confirmed=False)

        response = client.post(CHECK_URL, json={"email": "Watson@Example.com"})

        assert response.json() == {
            "exists": True,
            "provider": "google",
            "email_confirmed": False,
        }

    def test_users_table_fallback(self, client, db_session, auth_provider):
        create_test_user(db_session, email="lestrade@example.com")
        auth_provider.error = AuthProviderError("Auth service unreachable")

        response = client.post(CHECK_URL, json={"email": "LESTRADE@example.com"})

        assert response.status_code == 200
        assert response.json() == {"exists": True, "provider": "unknown"}

    def test_users_table_fallback_miss(self, client, auth_provider):
        auth_provider.error = AuthProviderError("Auth service unreachable")

        response = client.post(CHECK_URL, json={"email": "moriarty@example.com"})

        assert response.json() == {"exists": False, "provider": None}


class TestResendVerification:
    def test_missing_email(self, client):
        response = client.post(RESEND_URL, json={"email": ""})

        assert response.status_code == 400
        assert response.json() == {"error": "Email is required"}

    def test_sends_with_dashboard_redirect(self, client, auth_provider):
        response = client.post(RESEND_URL, json={"email": "hudson@example.com"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert auth_provider.sent == [
            (
                "signup",
                "hudson@example.com",
                "http://testserver/auth/callback?next=/dashboard",
            )
        ]

    def test_provider_failure(self, client, auth_provider):
        auth_provider.error = AuthProviderError("rate limited", status_code=429)

        response = client.post(RESEND_URL, json={"email": "hudson@example.com"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to resend verification email"}
