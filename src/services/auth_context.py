"""
Session/auth lifecycle for one browser client.

``AuthContext`` mirrors the auth provider's state locally (user profile +
session token), persists that mirror in ``LocalStorage`` so it survives
reloads, refreshes the token ahead of expiry and periodically revalidates it.

State machine::

    uninitialized -> loading -> authenticated | unauthenticated
    authenticated -> unauthenticated   (sign-out, refresh failure, failed check)

Losing a valid session at any checkpoint clears everything local (fail
closed). Timers and provider events always re-derive state from the provider
and carry a generation number so a stale timer can never clear a newer
session.
"""
import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from flask import Flask, current_app, session as flask_session

from src.services import profile_service
from src.services.auth_events import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED
from src.services.auth_provider import AuthApiError, AuthProviderClient, AuthSession
from src.services.scheduler import TimerScheduler
from src.services.storage_service import STORAGE_KEYS, LocalStorage, create_redis_client

logger = logging.getLogger("auth_context")

REFRESH_LEAD_SEC = 5 * 60
REFRESH_MIN_DELAY_SEC = 60
SESSION_CHECK_INTERVAL_SEC = 10 * 60


class AuthState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass
class AuthUser:
    id: str
    email: str
    role: str
    first_name: str
    last_name: str
    phone: str = ""
    is_active: bool = True
    speciality: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AuthUser":
        return cls(
            id=data["id"],
            email=data.get("email", ""),
            role=data.get("role", "secretary"),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            phone=data.get("phone") or "",
            is_active=bool(data.get("is_active", True)),
            speciality=data.get("speciality"),
        )


@dataclass
class SignUpResult:
    success: bool
    error: Optional[str] = None


def compute_refresh_delay(
    expires_at: float,
    now: float,
    lead: float = REFRESH_LEAD_SEC,
    minimum: float = REFRESH_MIN_DELAY_SEC,
) -> float:
    """
    Seconds to wait before refreshing a token expiring at ``expires_at``.

    Aims for ``lead`` seconds before expiry but never less than ``minimum``,
    even for a token that is about to expire or already has.
    """
    return max(expires_at - now - lead, minimum)


class AuthContext:
    def __init__(
        self,
        provider: AuthProviderClient,
        storage: LocalStorage,
        scheduler=None,
        profile_loader: Callable[[str], Optional[dict]] = profile_service.get_user_profile,
        profile_creator: Callable[..., object] = profile_service.create_profile,
        clock: Callable[[], float] = time.time,
        refresh_lead: float = REFRESH_LEAD_SEC,
        refresh_min_delay: float = REFRESH_MIN_DELAY_SEC,
        check_interval: float = SESSION_CHECK_INTERVAL_SEC,
    ):
        self.provider = provider
        self.storage = storage
        self.scheduler = scheduler or TimerScheduler()
        self.profile_loader = profile_loader
        self.profile_creator = profile_creator
        self.clock = clock
        self.refresh_lead = refresh_lead
        self.refresh_min_delay = refresh_min_delay
        self.check_interval = check_interval

        self.state = AuthState.UNINITIALIZED
        self.user: Optional[AuthUser] = None
        self.session: Optional[AuthSession] = None
        self.initialized = False
        # Called outside the lock whenever a live session is dropped
        self.on_cleared: Optional[Callable[[], None]] = None

        self._lock = threading.RLock()
        self._generation = 0
        self._refresh_timer = None
        self._check_timer = None
        self._subscription = None

    # -------------------------------
    # State helpers
    # -------------------------------

    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return (
                self.initialized
                and self.state == AuthState.AUTHENTICATED
                and self.user is not None
                and self.session is not None
            )

    @property
    def loading(self) -> bool:
        return self.state == AuthState.LOADING

    def _set_state(self, state: AuthState) -> None:
        with self._lock:
            if self.state != state:
                logger.info(f"[auth] {self.state.value} -> {state.value}")
            self.state = state

    def _settle_state(self) -> None:
        with self._lock:
            if self.user is not None and self.session is not None:
                self._set_state(AuthState.AUTHENTICATED)
            else:
                self._set_state(AuthState.UNAUTHENTICATED)

    def _set_session(self, session: AuthSession) -> None:
        with self._lock:
            self.session = session
            self._generation += 1
            self.storage.set(STORAGE_KEYS["SESSION"], session.to_dict())

    def _set_user(self, user: AuthUser) -> None:
        with self._lock:
            self.user = user
            self.storage.set(STORAGE_KEYS["USER_PROFILE"], user.to_dict())
            self.storage.set(
                STORAGE_KEYS["AUTH_STATE"],
                {"is_authenticated": True, "last_update": datetime.now(timezone.utc).isoformat()},
            )

    def _load_profile(self, user_id: Optional[str]) -> Optional[AuthUser]:
        if not user_id:
            return None
        data = self.profile_loader(user_id)
        return AuthUser.from_dict(data) if data else None

    def _clear_auth_data(self, expected_generation: Optional[int] = None) -> bool:
        """Drop the local mirror. With ``expected_generation``, only if nothing replaced it since."""
        with self._lock:
            if expected_generation is not None and expected_generation != self._generation:
                logger.info("[auth] Skipping clear: session changed since the check started")
                return False

            dropped = self.session is not None or self.user is not None
            self.session = None
            self.user = None
            self._generation += 1
            self._cancel_refresh_timer()
            self._stop_session_check()
            self.storage.clear()
            if self.initialized:
                self._set_state(AuthState.UNAUTHENTICATED)

        if dropped and self.on_cleared is not None:
            self.on_cleared()
        return True

    # -------------------------------
    # Lifecycle
    # -------------------------------

    def initialize(self) -> AuthState:
        """Restore state from storage, validated against the provider."""
        with self._lock:
            if self.initialized:
                return self.state
            self._set_state(AuthState.LOADING)

        try:
            self._restore()
        except Exception as e:
            logger.exception(f"[auth.initialize] Failed: {e}")
            self._clear_auth_data()
        finally:
            with self._lock:
                self.initialized = True
                self._settle_state()
            self._subscribe()
            self._start_timers()

        return self.state

    def _restore(self) -> None:
        stored_user = self.storage.get(STORAGE_KEYS["USER_PROFILE"])
        logger.info(
            "[auth.initialize] Cached mirror: session=%s user=%s auth_state=%s",
            bool(self.storage.get(STORAGE_KEYS["SESSION"])),
            bool(stored_user),
            self.storage.get(STORAGE_KEYS["AUTH_STATE"]),
        )

        try:
            current = self.provider.get_session()
        except AuthApiError as e:
            logger.warning(f"[auth.initialize] Provider rejected the session: {e}")
            self._clear_auth_data()
            return

        if current is None or not current.user_id:
            logger.info("[auth.initialize] No valid session, clearing auth data")
            self._clear_auth_data()
            return

        self._set_session(current)

        if stored_user and stored_user.get("id") == current.user_id:
            with self._lock:
                self.user = AuthUser.from_dict(stored_user)
            return

        profile = self._load_profile(current.user_id)
        if profile is None:
            logger.error(f"[auth.initialize] No active profile for user={current.user_id}")
            self._clear_auth_data()
        else:
            self._set_user(profile)

    def close(self) -> None:
        """Cancel timers and stop listening to the provider."""
        with self._lock:
            self._cancel_refresh_timer()
            self._stop_session_check()
            if self._subscription is not None:
                self._subscription.unsubscribe()
                self._subscription = None

    # -------------------------------
    # Provider events
    # -------------------------------

    def _subscribe(self) -> None:
        with self._lock:
            if self._subscription is None:
                self._subscription = self.provider.on_auth_state_change(self._on_auth_event)

    def _on_auth_event(self, event: str, session: Optional[AuthSession]) -> None:
        logger.info(f"[auth] Provider event {event} user={getattr(session, 'email', None)}")
        try:
            if event == SIGNED_OUT or session is None:
                self._clear_auth_data()
                return

            if event in (SIGNED_IN, TOKEN_REFRESHED):
                self._set_session(session)
                profile = self._load_profile(session.user_id)
                if profile is not None:
                    self._set_user(profile)
                with self._lock:
                    if self.initialized and self.state != AuthState.LOADING:
                        self._settle_state()
                self._start_timers()
        except Exception as e:
            logger.exception(f"[auth] Failed handling provider event {event}: {e}")

    # -------------------------------
    # Token refresh
    # -------------------------------

    def _cancel_refresh_timer(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None

    def _start_timers(self) -> None:
        """Refresh and liveness timers only run while a user is signed in."""
        with self._lock:
            if not self.initialized or self.session is None or self.user is None:
                return
        self._start_session_check()
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        with self._lock:
            self._cancel_refresh_timer()
            if not self.initialized or self.session is None:
                return

            generation = self._generation
            delay = compute_refresh_delay(
                self.session.expires_at, self.clock(), self.refresh_lead, self.refresh_min_delay
            )
            self._refresh_timer = self.scheduler.call_later(
                delay, lambda: self._refresh_token(generation)
            )
        logger.info(f"[auth] Token refresh scheduled in {int(delay)}s")

    def _refresh_token(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self.session is None:
                logger.debug("[auth] Ignoring stale refresh timer")
                return

        try:
            session = self.provider.refresh_session()
        except Exception as e:
            logger.warning(f"[auth] Token refresh failed: {e}")
            self._clear_auth_data(expected_generation=generation)
            return

        with self._lock:
            handled = self.session is not None and self.session.access_token == session.access_token
        if not handled:
            self._set_session(session)
            self._schedule_refresh()

    # -------------------------------
    # Periodic liveness check
    # -------------------------------

    def _start_session_check(self) -> None:
        with self._lock:
            if self._check_timer is None:
                self._check_timer = self.scheduler.call_every(
                    self.check_interval, self.check_session_validity
                )

    def _stop_session_check(self) -> None:
        with self._lock:
            if self._check_timer is not None:
                self._check_timer.cancel()
                self._check_timer = None

    def check_session_validity(self) -> bool:
        """Ask the provider whether the current token still maps to a user."""
        with self._lock:
            session = self.session
            generation = self._generation

        if session is None:
            self._clear_auth_data(expected_generation=generation)
            return False

        try:
            user = self.provider.get_user(session.access_token)
        except Exception as e:
            logger.info(f"[auth] Session invalid ({e}), clearing auth data")
            self._clear_auth_data(expected_generation=generation)
            return False

        if not user or not user.get("id"):
            logger.info("[auth] Session has no user, clearing auth data")
            self._clear_auth_data(expected_generation=generation)
            return False

        return True

    # -------------------------------
    # User actions
    # -------------------------------

    def login(self, email: str, password: str) -> bool:
        if not self.initialized:
            self.initialize()

        self._set_state(AuthState.LOADING)
        try:
            try:
                session = self.provider.sign_in_with_password(email.strip(), password)
            except AuthApiError as e:
                logger.warning(f"[auth.login] Sign-in rejected for {email}: {e}")
                self._clear_auth_data()
                return False

            if not session.user_id:
                logger.warning(f"[auth.login] No user returned for {email}")
                return False

            self._set_session(session)

            if self.user is None or self.user.id != session.user_id:
                profile = self._load_profile(session.user_id)
                if profile is None:
                    logger.error(f"[auth.login] No active profile for {email}")
                    self._clear_auth_data()
                    return False
                self._set_user(profile)

            logger.info(f"[auth.login] Signed in {email} as {self.user.role}")
            self._start_timers()
            return True
        except Exception as e:
            logger.exception(f"[auth.login] Failed for {email}: {e}")
            self._clear_auth_data()
            return False
        finally:
            self._settle_state()

    def sign_up(self, email: str, password: str, user_data: Dict[str, Optional[str]]) -> SignUpResult:
        """
        Create an auth account and its staff profile.

        ``user_data`` carries first_name, last_name, role, phone and an optional
        speciality. The new user is not signed in; a failed profile insert does
        not delete the auth account.
        """
        email = email.strip().lower()
        metadata = {
            "first_name": user_data.get("first_name"),
            "last_name": user_data.get("last_name"),
            "role": user_data.get("role"),
            "phone": user_data.get("phone"),
            "speciality": user_data.get("speciality"),
        }
        try:
            response = self.provider.sign_up(email, password, metadata=metadata)
        except AuthApiError as e:
            logger.warning(f"[auth.sign_up] Rejected for {email}: {e}")
            return SignUpResult(success=False, error=e.message)
        except Exception as e:
            logger.exception(f"[auth.sign_up] Failed for {email}: {e}")
            return SignUpResult(success=False, error="Account creation failed")

        if not response.user or not response.user.get("id"):
            return SignUpResult(success=False, error="Unknown error while creating the account")

        profile = self.profile_creator(
            user_id=response.user["id"],
            email=email,
            first_name=metadata["first_name"] or "",
            last_name=metadata["last_name"] or "",
            role=metadata["role"] or "secretary",
            phone=metadata["phone"] or "",
            speciality=metadata["speciality"],
        )
        if profile is None:
            return SignUpResult(success=False, error="Failed to create the staff profile")

        logger.info(f"[auth.sign_up] Account created for {email} role={metadata['role']}")
        return SignUpResult(success=True)

    def logout(self) -> None:
        self._set_state(AuthState.LOADING)
        try:
            # Local mirror goes first so the user is signed out even if the call fails
            self._clear_auth_data()
            self.provider.sign_out()
            logger.info("[auth.logout] Signed out")
        except Exception as e:
            logger.warning(f"[auth.logout] Remote sign-out failed: {e}")
        finally:
            self._settle_state()

    def refresh_auth(self) -> bool:
        """Force a token refresh and reload the profile."""
        if not self.initialized:
            return False

        self._set_state(AuthState.LOADING)
        try:
            session = self.provider.refresh_session()
            self._set_session(session)
            profile = self._load_profile(session.user_id)
            if profile is not None:
                self._set_user(profile)
            self._start_timers()
            return True
        except Exception as e:
            logger.warning(f"[auth.refresh_auth] Failed: {e}")
            self._clear_auth_data()
            return False
        finally:
            self._settle_state()

    def reset_password(self, email: str, redirect_to: Optional[str] = None) -> bool:
        try:
            self.provider.reset_password_for_email(email.strip().lower(), redirect_to=redirect_to)
            return True
        except AuthApiError as e:
            logger.warning(f"[auth.reset_password] Rejected for {email}: {e}")
            return False


class AuthContextRegistry:
    """
    One ``AuthContext`` per browser client id, created and initialized on first use.

    Only signed-in clients are kept: a context drops itself when it loses its
    session, ``release`` drops the ones a request leaves signed out, and past
    ``max_size`` the least recently used entries are closed. An evicted client
    is restored from storage on its next request.
    """

    def __init__(self, factory: Callable[[str], AuthContext], max_size: int = 1000):
        self._factory = factory
        self.max_size = max_size
        self._contexts: "OrderedDict[str, AuthContext]" = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._contexts

    def get(self, client_id: str) -> AuthContext:
        with self._lock:
            ctx = self._contexts.get(client_id)
            if ctx is not None:
                self._contexts.move_to_end(client_id)
                return ctx

            ctx = self._factory(client_id)
            ctx.on_cleared = lambda: self.discard(client_id, ctx)
            self._contexts[client_id] = ctx
            while len(self._contexts) > self.max_size:
                evicted_id, evicted = self._contexts.popitem(last=False)
                logger.info(f"[auth_registry] Evicting idle client {evicted_id}")
                evicted.close()
            ctx.initialize()
            return ctx

    def release(self, client_id: str) -> None:
        """End of request: keep the context only while it holds a session."""
        with self._lock:
            ctx = self._contexts.get(client_id)
        if ctx is not None and not ctx.is_authenticated:
            self.discard(client_id, ctx)

    def discard(self, client_id: str, ctx: Optional[AuthContext] = None) -> None:
        """Close and forget a client's context; with ``ctx``, only if it is still the registered one."""
        with self._lock:
            current = self._contexts.get(client_id)
            if current is None or (ctx is not None and current is not ctx):
                current = None
            else:
                del self._contexts[client_id]
        if current is not None:
            current.close()

    def close_all(self) -> None:
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
        for ctx in contexts:
            ctx.close()


def _default_factory(app: Flask) -> Callable[[str], AuthContext]:
    client = create_redis_client(app.config["REDIS_URL"])
    scheduler = TimerScheduler()

    def factory(client_id: str) -> AuthContext:
        storage = LocalStorage(client, client_id, ttl_sec=app.config["STORAGE_TTL_SEC"])
        provider = AuthProviderClient(
            app.config["AUTH_URL"],
            app.config["AUTH_API_KEY"],
            storage,
            timeout=app.config["AUTH_TIMEOUT"],
        )
        return AuthContext(
            provider,
            storage,
            scheduler=scheduler,
            refresh_lead=app.config["TOKEN_REFRESH_LEAD_SEC"],
            refresh_min_delay=app.config["TOKEN_REFRESH_MIN_DELAY_SEC"],
            check_interval=app.config["SESSION_CHECK_INTERVAL_SEC"],
        )

    return factory


def init_auth(app: Flask, factory: Optional[Callable[[str], AuthContext]] = None) -> AuthContextRegistry:
    previous = app.extensions.get("auth_registry")
    if previous is not None:
        previous.close_all()

    registry = AuthContextRegistry(factory or _default_factory(app), max_size=app.config["AUTH_MAX_CLIENTS"])
    app.extensions["auth_registry"] = registry
    return registry


def get_auth_context() -> AuthContext:
    """AuthContext of the browser client making the current request."""
    client_id = flask_session.get("client_id")
    if not client_id:
        client_id = uuid.uuid4().hex
        flask_session["client_id"] = client_id
        flask_session.permanent = True
    return current_app.extensions["auth_registry"].get(client_id)


def release_auth_context(exc: Optional[BaseException] = None) -> None:
    """Request teardown: forget the client's context unless it is still signed in."""
    client_id = flask_session.get("client_id")
    registry = current_app.extensions.get("auth_registry")
    if client_id and registry is not None:
        registry.release(client_id)
