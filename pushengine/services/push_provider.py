"""Push provider client for Firebase Cloud Messaging."""

import logging
from dataclasses import dataclass
from typing import Protocol

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from pushengine.config import Settings, get_settings
from pushengine.exceptions import ProviderError

logger = logging.getLogger(__name__)

# Error codes meaning the token will never be deliverable again
UNREGISTERED = "registration-token-not-registered"
INVALID_TOKEN = "invalid-registration-token"
INVALID_TOKEN_CODES = frozenset({UNREGISTERED, INVALID_TOKEN})


@dataclass(frozen=True)
class ProviderResult:
    """Outcome of a multicast for a single token."""

    success: bool
    error_code: str | None = None

    @property
    def token_invalid(self) -> bool:
        return not self.success and self.error_code in INVALID_TOKEN_CODES


class PushProvider(Protocol):
    """A remote push service that can address many tokens in one call.

    Implementations return exactly one result per token, in token order,
    and raise on transport-level failure.
    """

    def send_multicast(
        self,
        title: str,
        body: str,
        data: dict[str, str],
        tokens: list[str],
        dry_run: bool = False,
    ) -> list[ProviderResult]: ...


def error_code_for(exc: Exception | None) -> str:
    """Map an FCM per-token exception to a provider error code."""
    if isinstance(exc, messaging.UnregisteredError):
        return UNREGISTERED
    if isinstance(exc, exceptions.InvalidArgumentError) and "registration token" in str(exc).lower():
        return INVALID_TOKEN
    if isinstance(exc, messaging.SenderIdMismatchError):
        return "mismatched-credential"
    code = getattr(exc, "code", None)
    if code:
        return str(code).lower().replace("_", "-")
    return "unknown-error"


class FcmPushProvider:
    """Sends multicast messages through the Firebase Admin SDK.

    Uses a named Firebase app so it never touches the SDK's default app,
    and initializes it lazily on first send.
    """

    def __init__(
        self,
        credentials_file: str | None = None,
        project_id: str | None = None,
        timeout: float = 10.0,
        app_name: str = "pushengine",
    ) -> None:
        self.credentials_file = credentials_file
        self.project_id = project_id
        self.timeout = timeout
        self.app_name = app_name
        self._app: firebase_admin.App | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FcmPushProvider":
        settings = settings or get_settings()
        return cls(
            credentials_file=settings.fcm_credentials_file,
            project_id=settings.fcm_project_id,
            timeout=settings.provider_timeout_seconds,
        )

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app

        try:
            self._app = firebase_admin.get_app(self.app_name)
        except ValueError:
            if self.credentials_file:
                cred = credentials.Certificate(self.credentials_file)
            else:
                cred = credentials.ApplicationDefault()
            options: dict = {"httpTimeout": self.timeout}
            if self.project_id:
                options["projectId"] = self.project_id
            self._app = firebase_admin.initialize_app(cred, options, name=self.app_name)
            logger.info(f"Firebase app '{self.app_name}' initialized")
        return self._app

    def send_multicast(
        self,
        title: str,
        body: str,
        data: dict[str, str],
        tokens: list[str],
        dry_run: bool = False,
    ) -> list[ProviderResult]:
        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data=data,
        )
        try:
            response = messaging.send_each_for_multicast(
                message, dry_run=dry_run, app=self._get_app()
            )
        except exceptions.FirebaseError as e:
            raise ProviderError(f"FCM multicast failed: {e}") from e

        return [
            ProviderResult(True) if r.success else ProviderResult(False, error_code_for(r.exception))
            for r in response.responses
        ]


def get_push_provider() -> PushProvider:
    """Get the configured push provider."""
    return FcmPushProvider.from_settings()
