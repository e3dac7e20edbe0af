"""Client for the Supabase auth (GoTrue) REST API.

Identity lives in Supabase; this service only asks it to send emails,
change a password on behalf of a signed-in user, and look users up by
email with the service key. Failures raise AuthProviderError carrying the
provider's own message so it can be normalized for display
(see casefile.services.accounts.normalize_auth_error).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import UUID, uuid4

import httpx

from casefile.config import Settings

ADMIN_PAGE_SIZE = 1000


@dataclass(frozen=True)
class AuthUser:
    """Subset of an auth user record."""

    id: UUID
    email: str
    provider: str
    email_confirmed: bool


class AuthProviderError(Exception):
    """Auth provider rejected a call or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthProviderBase(ABC):
    @abstractmethod
    def find_user_by_email(self, email: str) -> AuthUser | None:
        """Exact (case-insensitive) email lookup via the admin API."""
        ...

    @abstractmethod
    def resend_signup_confirmation(self, email: str, *, redirect_to: str) -> None: ...

    @abstractmethod
    def send_password_recovery(self, email: str, *, redirect_to: str) -> None: ...

    @abstractmethod
    def update_password(self, access_token: str, new_password: str) -> None:
        """Change the password of the user the access token belongs to."""
        ...


class SupabaseAuthClient(AuthProviderBase):
    """Production client using httpx against {SUPABASE_URL}/auth/v1."""

    def __init__(self, supabase_url: str, service_key: str, timeout: float = 30.0):
        self._auth_url = f"{supabase_url.rstrip('/')}/auth/v1"
        self._service_key = service_key
        self._timeout = timeout

    def find_user_by_email(self, email: str) -> AuthUser | None:
        wanted = email.strip().lower()
        page = 1
        while True:
            data = self._request(
                "GET",
                "/admin/users",
                params={"page": page, "per_page": ADMIN_PAGE_SIZE},
                bearer=self._service_key,
            )
            users = data.get("users", []) if isinstance(data, dict) else []
            for raw in users:
                if (raw.get("email") or "").lower() == wanted:
                    return _parse_user(raw)
            if len(users) < ADMIN_PAGE_SIZE:
                return None
            page += 1

    def resend_signup_confirmation(self, email: str, *, redirect_to: str) -> None:
        self._request(
            "POST",
            "/resend",
            params={"redirect_to": redirect_to},
            json={"type": "signup", "email": email},
        )

    def send_password_recovery(self, email: str, *, redirect_to: str) -> None:
        self._request(
            "POST",
            "/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )

    def update_password(self, access_token: str, new_password: str) -> None:
        self._request("PUT", "/user", json={"password": new_password}, bearer=access_token)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        bearer: str | None = None,
    ) -> dict | list | None:
        headers = {"apikey": self._service_key}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(
                    method, f"{self._auth_url}{path}", params=params, json=json, headers=headers
                )
        except httpx.HTTPError as e:
            raise AuthProviderError(f"Auth service unreachable: {e}") from e

        if response.status_code >= 400:
            raise AuthProviderError(_error_message(response), status_code=response.status_code)

        if not response.content:
            return None
        return response.json()


def _error_message(response: httpx.Response) -> str:
    """GoTrue reports errors under several keys depending on the endpoint."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Auth request failed ({response.status_code})"

    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"Auth request failed ({response.status_code})"


def _parse_user(raw: dict) -> AuthUser:
    app_metadata = raw.get("app_metadata") or {}
    return AuthUser(
        id=UUID(raw["id"]),
        email=raw.get("email") or "",
        provider=app_metadata.get("provider") or "email",
        email_confirmed=bool(raw.get("email_confirmed_at")),
    )


class FakeAuthProvider(AuthProviderBase):
    """In-memory provider for tests and local runs without Supabase."""

    def __init__(self):
        self.users: dict[str, AuthUser] = {}
        self.sent: list[tuple[str, str, str]] = []  # (kind, email, redirect_to)
        self.passwords: dict[str, str] = {}  # access_token -> password
        self.error: AuthProviderError | None = None

    def add_user(
        self, email: str, provider: str = "email", email_confirmed: bool = True
    ) -> AuthUser:
        user = AuthUser(
            id=uuid4(), email=email.lower(), provider=provider, email_confirmed=email_confirmed
        )
        self.users[user.email] = user
        return user

    def find_user_by_email(self, email: str) -> AuthUser | None:
        self._raise_if_failing()
        return self.users.get(email.strip().lower())

    def resend_signup_confirmation(self, email: str, *, redirect_to: str) -> None:
        self._raise_if_failing()
        self.sent.append(("signup", email, redirect_to))

    def send_password_recovery(self, email: str, *, redirect_to: str) -> None:
        self._raise_if_failing()
        self.sent.append(("recovery", email, redirect_to))

    def update_password(self, access_token: str, new_password: str) -> None:
        self._raise_if_failing()
        self.passwords[access_token] = new_password

    def _raise_if_failing(self) -> None:
        if self.error is not None:
            raise self.error


def get_auth_provider(settings: Settings) -> AuthProviderBase:
    """Return the Supabase client when the project is configured, else the fake."""
    if settings.supabase_url and settings.supabase_service_key:
        return SupabaseAuthClient(settings.supabase_url, settings.supabase_service_key)
    return FakeAuthProvider()
