"""
Client for the hosted authentication service (GoTrue-style REST API).

The provider is an external collaborator: this module only speaks its HTTP
API, keeps the provider session in the storage mirror, and announces
sign-in / sign-out / refresh through an ``AuthEventChannel``.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from src.services.auth_events import (
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    AuthEventChannel,
    Subscription,
)
from src.services.storage_service import PROVIDER_SESSION_KEY, LocalStorage

logger = logging.getLogger("auth_provider")

# Treat a token this close to expiry as already expired
EXPIRY_MARGIN_SEC = 10


class AuthApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    expires_at: int
    user: Dict[str, Any] = field(default_factory=dict)
    token_type: str = "bearer"
    expires_in: int = 3600

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")

    @property
    def email(self) -> Optional[str]:
        return self.user.get("email")

    def seconds_left(self, now: float) -> float:
        return self.expires_at - now

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSession":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=int(data["expires_at"]),
            user=data.get("user") or {},
            token_type=data.get("token_type", "bearer"),
            expires_in=int(data.get("expires_in", 3600)),
        )

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], now: float) -> "AuthSession":
        """Build from a token endpoint response, which may omit ``expires_at``."""
        expires_in = int(payload.get("expires_in") or 3600)
        expires_at = payload.get("expires_at") or int(now) + expires_in
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_at=int(expires_at),
            user=payload.get("user") or {},
            token_type=payload.get("token_type", "bearer"),
            expires_in=expires_in,
        )


@dataclass
class SignUpResponse:
    user: Optional[Dict[str, Any]]
    session: Optional[AuthSession] = None


class AuthProviderClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        storage: LocalStorage,
        http: Optional[requests.Session] = None,
        timeout: float = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.storage = storage
        self.http = http or requests.Session()
        self.timeout = timeout
        self.clock = clock
        self.events = AuthEventChannel()

    # -------------------------------
    # HTTP plumbing
    # -------------------------------

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        headers["Authorization"] = f"Bearer {access_token or self.api_key}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/auth/v1/{path}"
        try:
            resp = self.http.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(access_token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthApiError(f"Auth service unreachable: {e}") from e

        if resp.status_code >= 400:
            raise AuthApiError(self._error_message(resp), status=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        return (
            body.get("msg")
            or body.get("error_description")
            or body.get("message")
            or body.get("error")
            or f"HTTP {resp.status_code}"
        )

    # -------------------------------
    # Stored provider session
    # -------------------------------

    def _load_session(self) -> Optional[AuthSession]:
        raw = self.storage.get(PROVIDER_SESSION_KEY)
        if not raw:
            return None
        try:
            return AuthSession.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("[auth_provider] Discarding malformed stored session")
            self.storage.remove(PROVIDER_SESSION_KEY)
            return None

    def _save_session(self, session: AuthSession) -> None:
        self.storage.set(PROVIDER_SESSION_KEY, session.to_dict())

    def _drop_session(self) -> None:
        self.storage.remove(PROVIDER_SESSION_KEY)

    # -------------------------------
    # Public API
    # -------------------------------

    def on_auth_state_change(self, listener) -> Subscription:
        return self.events.subscribe(listener)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._request(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = AuthSession.from_payload(payload, self.clock())
        self._save_session(session)
        logger.info(f"[auth_provider] Signed in user={session.user_id}")
        self.events.emit(SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> SignUpResponse:
        payload = self._request(
            "POST",
            "signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )

        # Auto-confirmed projects answer with a session, others with the bare user
        if payload.get("access_token"):
            session = AuthSession.from_payload(payload, self.clock())
            self._save_session(session)
            self.events.emit(SIGNED_IN, session)
            return SignUpResponse(user=session.user, session=session)

        user = payload.get("user") or payload
        return SignUpResponse(user=user if user.get("id") else None)

    def refresh_session(self) -> AuthSession:
        current = self._load_session()
        if current is None:
            raise AuthApiError("No session to refresh")

        try:
            payload = self._request(
                "POST",
                "token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": current.refresh_token},
            )
        except AuthApiError:
            self._drop_session()
            self.events.emit(SIGNED_OUT, None)
            raise

        session = AuthSession.from_payload(payload, self.clock())
        self._save_session(session)
        logger.info(f"[auth_provider] Token refreshed user={session.user_id}")
        self.events.emit(TOKEN_REFRESHED, session)
        return session

    def get_session(self) -> Optional[AuthSession]:
        """Stored session, refreshed first when it has expired."""
        session = self._load_session()
        if session is None:
            return None

        if session.seconds_left(self.clock()) > EXPIRY_MARGIN_SEC:
            return session

        return self.refresh_session()

    def get_user(self, access_token: Optional[str] = None) -> Dict[str, Any]:
        if access_token is None:
            session = self._load_session()
            if session is None:
                raise AuthApiError("Auth session missing", status=401)
            access_token = session.access_token
        return self._request("GET", "user", access_token=access_token)

    def sign_out(self) -> None:
        """Revoke remotely; the local session is dropped even if that fails."""
        session = self._load_session()
        try:
            if session is not None:
                self._request("POST", "logout", access_token=session.access_token)
        finally:
            self._drop_session()
            self.events.emit(SIGNED_OUT, None)

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        self._request("POST", "recover", json={"email": email}, params=params)
