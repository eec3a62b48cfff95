from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from pywebpush import WebPushException

from pairsignal.accounts import AccountStore
from pairsignal.api import create_app
from pairsignal.notifications import PushNotifier
from pairsignal.pairing import PairingDirectory
from pairsignal.utils.serialization import loads


class FakeClock:
    """Callable clock whose time only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class PushRecorder:
    """Stands in for ``pywebpush.webpush``; records calls and answers with ``status``."""

    def __init__(self):
        self.calls = []
        self.status = 201

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        response = SimpleNamespace(status_code=self.status, text="")
        if self.status >= 300:
            raise WebPushException(f"Push failed: {self.status}", response=response)
        return response

    @property
    def payloads(self):
        return [loads(call["data"]) for call in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def accounts(clock):
    return AccountStore(clock=clock)


@pytest.fixture
def directory(accounts):
    return PairingDirectory(accounts)


@pytest.fixture
def linked_pair(accounts):
    """Two registered accounts linked to each other."""

    alice = accounts.register()
    bob = accounts.register()
    accounts.link(alice.id, bob.invite_code)
    return alice.id, bob.id


@pytest.fixture
def push_service():
    return PushRecorder()


@pytest.fixture
def notifier(accounts, push_service):
    return PushNotifier(
        accounts,
        send=push_service,
        vapid_private_key="test-vapid-key",
        vapid_email="mailto:ops@example.org",
    )


@pytest.fixture
def app(accounts, notifier, clock):
    return create_app(accounts=accounts, notifier=notifier, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    def _register(**body):
        response = client.post("/api/auth/register", json=body)
        assert response.status_code == 201
        data = response.json()
        return {"x-auth-token": data["token"]}, data["user"]

    return _register


@pytest.fixture
def partners(client, register):
    """Headers and user records for two partners linked over the API."""

    alice_headers, alice = register()
    bob_headers, bob = register()
    response = client.post(
        "/api/auth/link-partner", json={"inviteCode": bob["inviteCode"]}, headers=alice_headers
    )
    assert response.status_code == 200
    return {
        "alice": alice_headers,
        "bob": bob_headers,
        "alice_id": alice["id"],
        "bob_id": bob["id"],
    }
