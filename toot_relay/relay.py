"""The per-event pipeline: filter, sanitize, authenticate, submit."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from .bluesky import BlueskyClient
from .config import Settings
from .errors import RelayError
from .logging_setup import get_logger
from .metrics import relay_failures_total, relay_outcomes_total
from .models import EventKind, OutboundPost, RelayOutcome, StreamEvent
from .sanitize import sanitize


log = get_logger(__name__)


def utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat()


class PostRelay:
    """Republishes the text of one Mastodon update as a Bluesky post.

    Each call to ``relay`` logs in afresh and posts once. Sessions, HTTP
    clients and text are owned by that call, so any number of calls may run
    concurrently.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], str] = utc_now_rfc3339,
    ):
        self.settings = settings
        self.transport = transport
        self.clock = clock
        # Set by the stream once the token owner is known
        self.watched_account_id: Optional[str] = settings.mastodon_account_id

    def _client(self) -> BlueskyClient:
        return BlueskyClient(self.settings.bluesky_pds_url, transport=self.transport)

    async def relay(self, event: StreamEvent) -> RelayOutcome:
        """Run the pipeline; errors propagate to the caller."""
        if event.kind is not EventKind.UPDATE:
            return RelayOutcome.IGNORED

        if self.watched_account_id is None:
            log.warning("relay_skipped_no_watched_account", status_id=event.status_id)
            return RelayOutcome.IGNORED
        if event.account_id != self.watched_account_id:
            log.debug("relay_skipped_other_account", status_id=event.status_id, account_id=event.account_id)
            return RelayOutcome.IGNORED

        text = sanitize(event.content)
        if not text:
            log.debug("relay_skipped_empty", status_id=event.status_id)
            return RelayOutcome.EMPTY

        async with self._client() as client:
            session = await client.create_session(
                self.settings.bluesky_handle,
                self.settings.bluesky_password.get_secret_value(),
            )
            post = OutboundPost(text=text, created_at=self.clock())
            created: Dict[str, Any] = await client.create_record(session, post)

        log.info("relay_posted", status_id=event.status_id, uri=created.get("uri"), chars=len(text))
        return RelayOutcome.POSTED

    async def handle(self, event: StreamEvent) -> RelayOutcome:
        """Task entry point: run the pipeline and reduce any failure to a log line."""
        try:
            outcome = await self.relay(event)
        except RelayError as e:
            relay_failures_total.labels(stage=e.stage).inc()
            level = log.warning if e.stage == "decode" else log.error
            level("relay_failed", stage=e.stage, status_id=event.status_id, error=str(e))
            outcome = RelayOutcome.FAILED
        except Exception as e:
            relay_failures_total.labels(stage="unexpected").inc()
            log.exception("relay_failed", stage="unexpected", status_id=event.status_id, error=str(e))
            outcome = RelayOutcome.FAILED

        relay_outcomes_total.labels(outcome=outcome.value).inc()
        return outcome
