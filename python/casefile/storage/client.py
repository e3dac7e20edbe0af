"""Supabase Storage signing client.

Evidence files live in a private bucket. Readers never get the object
itself from this service, only a time-limited signed URL for it.
Storage paths are stored on case_media rows exactly as uploaded, so
every method receives the full object path.
"""

from abc import ABC, abstractmethod
from uuid import uuid4

import httpx

from casefile.config import Settings


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class StorageClientBase(ABC):
    """Abstract base class for storage client implementations."""

    @abstractmethod
    def sign_url(self, path: str, *, expires_in: int = 3600) -> str:
        """Create a signed download URL.

        Args:
            path: Object path inside the bucket.
            expires_in: URL validity in seconds.

        Returns:
            Absolute signed URL.

        Raises:
            StorageError: If signing fails.
        """
        ...


class StorageClient(StorageClientBase):
    """Production client for the Supabase Storage REST API."""

    def __init__(
        self,
        supabase_url: str,
        service_key: str,
        bucket: str = "case-media",
        timeout: float = 30.0,
    ):
        self._base_url = supabase_url.rstrip("/")
        self._bucket = bucket
        self._storage_url = f"{self._base_url}/storage/v1"
        self._timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def sign_url(self, path: str, *, expires_in: int = 3600) -> str:
        """Sign via POST /object/sign/{bucket}/{path}."""
        url = f"{self._storage_url}/object/sign/{self._bucket}/{path.lstrip('/')}"

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(url, headers=self._headers, json={"expiresIn": expires_in})
        except httpx.HTTPError as e:
            raise StorageError(f"Storage unreachable: {e}", code="E_SIGN_FAILED") from e

        if response.status_code != 200:
            raise StorageError(
                f"Failed to sign {path}: {response.status_code} {response.text}",
                code="E_SIGN_FAILED",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise StorageError(
                f"Failed to sign {path}: response is not JSON", code="E_SIGN_FAILED"
            ) from e
        if not isinstance(data, dict):
            raise StorageError(
                f"Failed to sign {path}: unexpected response body", code="E_SIGN_FAILED"
            )

        signed_path = data.get("signedURL") or data.get("signedUrl") or ""
        if not signed_path:
            raise StorageError("Failed to sign: missing signed URL", code="E_SIGN_FAILED")

        return self._absolute(signed_path)

    def _absolute(self, signed_path: str) -> str:
        """Supabase returns paths relative to either the project or /storage/v1."""
        if signed_path.startswith(("http://", "https://")):
            return signed_path

        bare = signed_path.lstrip("/")
        if bare.startswith("storage/"):
            return f"{self._base_url}/{bare}"
        return f"{self._storage_url}/{bare}"


class FakeStorageClient(StorageClientBase):
    """In-memory signer for tests and local runs without Supabase.

    Paths registered with fail_on() raise StorageError when signed.
    """

    def __init__(self):
        self._failing_paths: set[str] = set()
        self.signed: list[tuple[str, int]] = []

    def sign_url(self, path: str, *, expires_in: int = 3600) -> str:
        if path in self._failing_paths:
            raise StorageError(f"Object not found: {path}", code="E_SIGN_FAILED")
        self.signed.append((path, expires_in))
        return f"https://fake-storage.test/sign/{path}?token=fake-{uuid4()}&expires={expires_in}"

    # Test helper methods

    def fail_on(self, *paths: str) -> None:
        self._failing_paths.update(paths)

    def clear(self) -> None:
        self._failing_paths.clear()
        self.signed.clear()


def get_storage_client(settings: Settings) -> StorageClientBase:
    """Return the Supabase client when the project is configured, else the fake."""
    if settings.supabase_url and settings.supabase_service_key:
        return StorageClient(
            supabase_url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            bucket=settings.storage_bucket,
        )

    return FakeStorageClient()
