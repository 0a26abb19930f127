"""Test configuration and fixtures.

Runs against an in-memory SQLite database shared by the process-wide
DBStorage. Email, OAuth and background work are replaced by in-process fakes
so no test touches the network or a worker thread.
"""

import os
from datetime import timedelta

# Set env flags BEFORE importing application modules
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

from api import create_app
from models import storage
from models.base_model import Base, utcnow
from services.accounts import AccountService
from services.avatars import LocalAvatarStorage
from services.email import EmailDeliveryError
from services.errors import AccountError, ErrorKind
from services.oauth import OAuthIdentity
from services.profiles import ProfileService
from services.sessions import SessionService
from services.stores import AvatarStore, RefreshTokenStore, UserStore
from utils.security import CredentialHasher, JWTService

JWT_SECRET = "testing-secret-key-that-is-long-enough-for-hs256"
PASSWORD = "correct-horse-battery"


class FakeClock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, delta: timedelta):
        self.now = self.now + delta


class RecordingNotifier:
    def __init__(self):
        self.verification = []
        self.reset = []
        self.fail = False

    def send_verification_email(self, to, name, token):
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.verification.append((to, name, token))

    def send_password_reset_email(self, to, name, token):
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.reset.append((to, name, token))


class InlineDispatcher:
    """Runs tasks immediately; failures are recorded instead of raised."""

    def __init__(self):
        self.tasks = []
        self.failures = []

    def submit(self, fn, *args, description="", **kwargs):
        self.tasks.append(description)
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            self.failures.append((description, exc))

    def shutdown(self, wait=True):
        pass


class FakeIdentityBridge:
    provider = "google"

    def __init__(self):
        self.identity = OAuthIdentity(
            external_id="google-123",
            email="oauth.user@example.com",
            name="OAuth User",
            picture_url="https://example.com/pic.png",
        )
        self.codes = []

    def auth_url(self, state):
        return f"https://accounts.example.com/auth?state={state}"

    def exchange_code(self, code):
        self.codes.append(code)
        if code == "bad-code":
            raise AccountError(ErrorKind.OAUTH_EXCHANGE_FAILED, "failed to exchange code")
        return f"credential-{code}"

    def fetch_identity(self, credential):
        return self.identity


@pytest.fixture(autouse=True)
def clean_db():
    yield
    session = storage.get_session()
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    storage.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def dispatcher():
    return InlineDispatcher()


@pytest.fixture()
def bridge():
    return FakeIdentityBridge()


@pytest.fixture()
def hasher():
    return CredentialHasher(time_cost=1, memory_cost=64, parallelism=1)


@pytest.fixture()
def users():
    return UserStore(storage)


@pytest.fixture()
def refresh_tokens():
    return RefreshTokenStore(storage)


@pytest.fixture()
def avatar_storage(tmp_path):
    return LocalAvatarStorage(str(tmp_path / "avatars"), "/static/avatars", max_bytes=1024)


@pytest.fixture()
def accounts(users, hasher, notifier, dispatcher, bridge, clock):
    return AccountService(users, hasher, notifier, dispatcher, identity_bridge=bridge, clock=clock)


@pytest.fixture()
def jwt_service(clock):
    return JWTService(
        secret=JWT_SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        issuer="user-accounts-test",
        clock=clock,
    )


@pytest.fixture()
def sessions(jwt_service, refresh_tokens):
    return SessionService(jwt_service, refresh_tokens)


@pytest.fixture()
def profiles(users, avatar_storage, dispatcher):
    return ProfileService(users, AvatarStore(storage), avatar_storage, dispatcher)


@pytest.fixture()
def verified_user(accounts, notifier):
    accounts.register("jane@example.com", PASSWORD, "Jane Doe")
    _, _, token = notifier.verification[-1]
    return accounts.verify_email(token)


@pytest.fixture()
def app(notifier, dispatcher, bridge, avatar_storage):
    app = create_app(
        "testing",
        notifier=notifier,
        dispatcher=dispatcher,
        identity_bridge=bridge,
        avatar_storage=avatar_storage,
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client, notifier):
    """Register, verify and log in through the API; returns the login payload."""

    def _login(email="api.user@example.com", password=PASSWORD, name="Api User"):
        resp = client.post("/api/v1/auth/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.get_json()
        token = notifier.verification[-1][2]
        assert client.post("/api/v1/auth/verify-email", json={"token": token}).status_code == 200
        resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]

    return _login


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
