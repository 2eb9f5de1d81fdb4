"""Test configuration for pytest."""

import json

import httpx
import pytest

from toot_relay.config import Settings
from toot_relay.models import EventKind, StreamEvent

SESSION_PATH = "/xrpc/com.atproto.server.createSession"
RECORD_PATH = "/xrpc/com.atproto.repo.createRecord"
FIXED_NOW = "2024-05-01T12:00:00+00:00"
WATCHED_ACCOUNT_ID = "109000000000000042"


class FakeBluesky:
    """Answers XRPC calls the way a PDS would and records every request."""

    def __init__(self, session_status=200, session_body=None, record_status=200, record_body=None):
        self.session_status = session_status
        self.session_body = session_body if session_body is not None else {
            "accessJwt": "jwt-1",
            "refreshJwt": "refresh-1",
            "handle": "relay.bsky.social",
            "did": "did:plc:relay",
        }
        self.record_status = record_status
        self.record_body = record_body if record_body is not None else {
            "uri": "at://did:plc:relay/app.bsky.feed.post/3kabc",
            "cid": "bafyrei",
        }
        self.requests = []

    @staticmethod
    def _respond(status, body):
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == SESSION_PATH:
            return self._respond(self.session_status, self.session_body)
        if request.url.path == RECORD_PATH:
            status = self.record_status(request) if callable(self.record_status) else self.record_status
            return self._respond(status, self.record_body)
        return httpx.Response(404, json={"error": "MethodNotImplemented"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]

    @property
    def session_calls(self):
        return self.calls(SESSION_PATH)

    @property
    def record_calls(self):
        return self.calls(RECORD_PATH)


def request_json(request: httpx.Request):
    return json.loads(request.content)


@pytest.fixture
def settings():
    return Settings(
        mastodon_token="masto-token",
        bluesky_handle="relay.bsky.social",
        bluesky_password="app-password",
        bluesky_pds_url="https://pds.example",
        mastodon_account_id=WATCHED_ACCOUNT_ID,
        reconnect_min_delay=0,
        reconnect_max_delay=0,
        shutdown_grace=1,
    )


@pytest.fixture
def fake_bluesky():
    return FakeBluesky()


@pytest.fixture
def make_update():
    """Build an update event the way Mastodon.py delivers it."""

    def _make(content, status_id="110000000000000001", account_id=WATCHED_ACCOUNT_ID, acct="brennschluss"):
        return StreamEvent(
            EventKind.UPDATE,
            {
                "id": status_id,
                "content": content,
                "visibility": "public",
                "account": {"id": account_id, "acct": acct},
            },
        )

    return _make
