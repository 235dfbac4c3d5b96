from datetime import date
from fnmatch import fnmatch
import itertools

import pytest
from flask import Flask

from config import TestConfig
from extensions import db
from src.app_factory import create_app
from src.models import Patient, Profile
from src.services.auth_context import AuthContext, init_auth
from src.services.auth_provider import AuthApiError, AuthProviderClient
from src.services.storage_service import LocalStorage


# -------------------------------
# Test doubles
# -------------------------------

class FakeRedis:
    """Just the slice of the redis client LocalStorage uses."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.data.pop(key, None) is not None)
        return removed

    def scan_iter(self, match="*"):
        return [k for k in list(self.data) if fnmatch(k, match)]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTimer:
    def __init__(self, due, fn, interval=None):
        self.due = due
        self.fn = fn
        self.interval = interval
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Timers that only fire when the test advances the clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[FakeTimer] = []

    def call_later(self, delay, fn):
        timer = FakeTimer(self.clock.now + delay, fn)
        self.timers.append(timer)
        return timer

    def call_every(self, interval, fn):
        timer = FakeTimer(self.clock.now + interval, fn, interval)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and t.interval is None]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.clock.now = timer.due
            if timer.interval is None:
                timer.cancelled = True
            else:
                timer.due += timer.interval
            timer.fn()
        self.clock.now = target


class FakeAuthServer:
    """In-memory stand-in for the hosted auth REST API."""

    def __init__(self, clock: FakeClock, expires_in: int = 3600):
        self.clock = clock
        self.expires_in = expires_in
        self.users = {}
        self.access_tokens = {}
        self.refresh_tokens = {}
        self.fail_refresh = False
        self.refresh_calls = 0
        self.recover_requests = []
        self._counter = itertools.count(1)

    def add_user(self, email, password, user_id=None):
        user = {"id": user_id or f"user-{next(self._counter)}", "email": email}
        self.users[email] = (password, user)
        return user

    def revoke_all(self):
        self.access_tokens.clear()

    def _issue(self, user):
        n = next(self._counter)
        access, refresh = f"access-{n}", f"refresh-{n}"
        self.access_tokens[access] = user
        self.refresh_tokens[refresh] = user
        return {
            "access_token": access,
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": self.expires_in,
            "expires_at": int(self.clock()) + self.expires_in,
            "user": dict(user),
        }

    def handle(self, method, path, json=None, params=None, access_token=None):
        params = params or {}
        if path == "token" and params.get("grant_type") == "password":
            password, user = self.users.get(json["email"], (None, None))
            if user is None or password != json["password"]:
                raise AuthApiError("Invalid login credentials", status=400)
            return self._issue(user)

        if path == "token" and params.get("grant_type") == "refresh_token":
            self.refresh_calls += 1
            user = self.refresh_tokens.pop(json["refresh_token"], None)
            if self.fail_refresh or user is None:
                raise AuthApiError("Invalid Refresh Token", status=400)
            return self._issue(user)

        if path == "signup":
            if json["email"] in self.users:
                raise AuthApiError("User already registered", status=422)
            user = self.add_user(json["email"], json["password"])
            return {**user, "user_metadata": json.get("data", {})}

        if path == "user":
            user = self.access_tokens.get(access_token)
            if user is None:
                raise AuthApiError("invalid JWT", status=401)
            return dict(user)

        if path == "logout":
            self.access_tokens.pop(access_token, None)
            return {}

        if path == "recover":
            self.recover_requests.append(json["email"])
            return {}

        raise AuthApiError(f"Unknown path {path}", status=404)


class FakeAuthProvider(AuthProviderClient):
    """Real provider client with the HTTP layer routed to a FakeAuthServer."""

    def __init__(self, server: FakeAuthServer, storage: LocalStorage, clock: FakeClock):
        super().__init__("http://auth.test", "anon-key", storage, http=object(), clock=clock)
        self.server = server

    def _request(self, method, path, *, json=None, params=None, access_token=None):
        return self.server.handle(method, path, json=json, params=params, access_token=access_token)


# -------------------------------
# Fixtures
# -------------------------------

@pytest.fixture
def app() -> Flask:
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def storage(fake_redis):
    return LocalStorage(fake_redis, "client-1")


@pytest.fixture
def auth_server(clock):
    return FakeAuthServer(clock)


@pytest.fixture
def provider(auth_server, storage, clock):
    return FakeAuthProvider(auth_server, storage, clock)


@pytest.fixture
def make_auth(app, auth_server, fake_redis, scheduler, clock):
    """Build an AuthContext for a browser client; same client id means same storage."""
    def _make(client_id="client-1", **kwargs):
        client_storage = LocalStorage(fake_redis, client_id)
        return AuthContext(
            FakeAuthProvider(auth_server, client_storage, clock),
            client_storage,
            scheduler=scheduler,
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def auth_registry(app, make_auth):
    return init_auth(app, factory=make_auth)


@pytest.fixture
def make_profile(app):
    def _make(role="doctor", email=None, first_name="Jean", last_name="Mbarga", is_active=True, **extra):
        count = Profile.query.count() + 1
        profile_id = extra.pop("id", f"profile-{count}")
        profile = Profile(
            id=profile_id,
            email=email or f"{role}{count}@clinicare.cm",
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone="690000000",
            is_active=is_active,
            **extra,
        )
        db.session.add(profile)
        db.session.commit()
        return profile

    return _make


@pytest.fixture
def make_patient(app):
    def _make(first_name="Alice", last_name="Nkomo", phone="677123456", **extra):
        patient = Patient(
            first_name=first_name,
            last_name=last_name,
            date_of_birth=extra.pop("date_of_birth", date(1990, 6, 15)),
            gender=extra.pop("gender", "F"),
            phone=phone,
            **extra,
        )
        db.session.add(patient)
        db.session.commit()
        return patient

    return _make


@pytest.fixture
def staff_user(make_profile, auth_server):
    """Registers a profile and a matching auth account; returns (profile, email, password)."""
    def _make(role="doctor", password="secret123", **kwargs):
        profile = make_profile(role=role, **kwargs)
        auth_server.add_user(profile.email, password, user_id=profile.id)
        return profile, profile.email, password

    return _make
