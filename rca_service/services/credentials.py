"""Keeps each user's delegated Azure DevOps access token valid."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

import httpx

from rca_service.models.domain import Credential
from rca_service.services.exceptions import CredentialError
from rca_service.telemetry import ActivityLog

MINIMUM_EXPIRY_MARGIN_SECONDS = 300


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStore(Protocol):
    def get_credential(self, subject_id: str) -> Optional[Credential]:  # pragma: no cover - interface
        ...

    def put_credential(self, credential: Credential) -> None:  # pragma: no cover - interface
        ...


class CredentialManager:
    """Returns a currently valid access token, refreshing through Azure AD when expired.

    Two pipeline runs for the same user may both observe an expired token and
    both refresh. The race is tolerated: each refresh is independently valid
    and the last write to the store wins.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        client_id: str | None,
        client_secret: str | None,
        tenant_id: str | None,
        scope: str,
        authority_url: str = "https://login.microsoftonline.com",
        expiry_margin_seconds: int = MINIMUM_EXPIRY_MARGIN_SECONDS,
        http_client: httpx.Client | None = None,
        activity: ActivityLog | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._tenant_id = tenant_id
        self._scope = scope
        self._authority_url = authority_url.rstrip("/")
        self._margin = timedelta(seconds=max(expiry_margin_seconds, MINIMUM_EXPIRY_MARGIN_SECONDS))
        self._http = http_client or httpx.Client(timeout=30.0)
        self._activity = activity or ActivityLog()
        self._clock = clock

    @property
    def token_endpoint(self) -> str:
        return f"{self._authority_url}/{self._tenant_id}/oauth2/v2.0/token"

    def store_initial_credential(
        self,
        subject_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_in: int,
    ) -> Credential:
        credential = Credential(
            subject_id=subject_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self._expiry_from(expires_in),
        )
        self._store.put_credential(credential)
        return credential

    def get_valid_token(self, user_id: str) -> str:
        credential = self._store.get_credential(user_id)
        if credential is None:
            raise CredentialError(f"No credential stored for user {user_id}")
        if credential.access_token and credential.expires_at and self._clock() < credential.expires_at:
            return credential.access_token
        if not credential.refresh_token:
            raise CredentialError(f"Access token expired and no refresh token available for user {user_id}")
        return self._refresh(credential).access_token or ""

    def _refresh(self, credential: Credential) -> Credential:
        if not (self._client_id and self._client_secret and self._tenant_id):
            raise CredentialError("Azure AD client id, secret and tenant must be configured to refresh tokens")

        self._activity.info(f"Refreshing access token for user {credential.subject_id}")
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "scope": self._scope,
        }
        try:
            response = self._http.post(self.token_endpoint, data=data)
        except httpx.HTTPError as exc:
            self._activity.error("Token refresh request failed", {"user_id": credential.subject_id, "error": str(exc)})
            raise CredentialError("Failed to refresh access token") from exc
        if response.status_code >= 400:
            self._activity.error(
                "Token refresh rejected by identity provider",
                {"user_id": credential.subject_id, "status": response.status_code, "response": response.text[:2000]},
            )
            raise CredentialError("Failed to refresh access token")

        try:
            payload = response.json()
            access_token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as exc:
            raise CredentialError("Token endpoint returned an unusable response") from exc

        refreshed = credential.model_copy(
            update={
                "access_token": access_token,
                "refresh_token": payload.get("refresh_token") or credential.refresh_token,
                "expires_at": self._expiry_from(expires_in),
            }
        )
        self._store.put_credential(refreshed)
        return refreshed

    def _expiry_from(self, expires_in: int) -> datetime:
        return self._clock() + timedelta(seconds=expires_in) - self._margin
