"""Minimal Bluesky XRPC client: log in, create one post record."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from atproto import models
from pydantic import ValidationError

from .errors import AuthError, SubmitError
from .logging_setup import get_logger
from .models import DestinationSession, OutboundPost


log = get_logger(__name__)


def _xrpc_path(nsid: str) -> str:
    return f"/xrpc/{nsid}"


def _describe_error(resp: httpx.Response) -> str:
    """Render an XRPC error body ({"error", "message"}) for a log line."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        parts = [str(body[key]) for key in ("error", "message") if body.get(key)]
        if parts:
            return ": ".join(parts)
    return resp.text[:200]


class BlueskyClient:
    """One client per relay attempt; nothing is shared between attempts."""

    def __init__(self, pds_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.pds_url = pds_url
        self._http = httpx.AsyncClient(base_url=pds_url, transport=transport)

    async def __aenter__(self) -> "BlueskyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def create_session(self, identifier: str, password: str) -> DestinationSession:
        path = _xrpc_path(models.ids.ComAtprotoServerCreateSession)
        try:
            resp = await self._http.post(path, json={"identifier": identifier, "password": password})
        except httpx.HTTPError as e:
            raise AuthError(f"createSession request failed: {e!r}") from e

        if not resp.is_success:
            raise AuthError(
                f"createSession returned HTTP {resp.status_code}: {_describe_error(resp)}",
                status_code=resp.status_code,
            )

        try:
            session = DestinationSession.model_validate_json(resp.content)
        except ValidationError as e:
            raise AuthError("createSession response has no usable accessJwt/did", status_code=resp.status_code) from e

        log.debug("session_created", did=session.account_id)
        return session

    async def create_record(self, session: DestinationSession, post: OutboundPost) -> Dict[str, Any]:
        path = _xrpc_path(models.ids.ComAtprotoRepoCreateRecord)
        payload = {
            "repo": session.account_id,
            "collection": models.ids.AppBskyFeedPost,
            "record": post.to_record(),
        }
        try:
            resp = await self._http.post(path, json=payload, headers={"Authorization": session.authorization})
        except httpx.HTTPError as e:
            raise SubmitError(f"createRecord request failed: {e!r}") from e

        if not resp.is_success:
            raise SubmitError(
                f"createRecord returned HTTP {resp.status_code}: {_describe_error(resp)}",
                status_code=resp.status_code,
            )

        # The record exists at this point; an odd body only costs us the uri in the log.
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
