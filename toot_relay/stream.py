"""Mastodon user stream, run in a background thread with reconnects."""

import threading
from typing import Callable, Optional

from mastodon import Mastodon, MastodonError, MastodonUnauthorizedError, StreamListener

from .config import Settings
from .errors import StreamFault
from .logging_setup import get_logger
from .metrics import stream_connected, stream_reconnects_total
from .models import EventKind, StreamEvent

log = get_logger(__name__)


class RelayStreamListener(StreamListener):
    """Turns Mastodon.py callbacks into StreamEvent values.

    Callbacks run on the streaming thread; ``on_event`` must not block.
    """

    def __init__(self, on_event: Callable[[StreamEvent], None]):
        super().__init__()
        self.on_event = on_event
        self.events_received = 0

    def _emit(self, event: StreamEvent) -> None:
        self.events_received += 1
        stream_connected.set(1)
        self.on_event(event)

    def on_update(self, status):
        self._emit(StreamEvent(EventKind.UPDATE, status))

    def on_status_update(self, status):
        self._emit(StreamEvent(EventKind.STATUS_UPDATE, status))

    def on_delete(self, status_id):
        self._emit(StreamEvent(EventKind.DELETE, status_id))

    def on_notification(self, notification):
        self._emit(StreamEvent(EventKind.NOTIFICATION, notification))

    def on_conversation(self, conversation):
        self._emit(StreamEvent(EventKind.CONVERSATION, conversation))

    def on_unknown_event(self, name, unknown_event=None):
        self._emit(StreamEvent(EventKind.UNKNOWN, unknown_event, name=name))

    def handle_heartbeat(self):
        self._emit(StreamEvent(EventKind.HEARTBEAT))

    def on_abort(self, err):
        log.warning("stream_aborted", error=str(err))


class StreamRunner:
    """Holds one user-stream subscription for the life of the process.

    Network drops reconnect with exponential backoff; a rejected token is
    reported once through ``on_fatal`` and ends the runner.
    """

    def __init__(
        self,
        settings: Settings,
        on_event: Callable[[StreamEvent], None],
        on_fatal: Callable[[StreamFault], None],
        client_factory: Optional[Callable[[], Mastodon]] = None,
        on_account: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.on_event = on_event
        self.on_fatal = on_fatal
        self.on_account = on_account
        self.account_id: Optional[str] = settings.mastodon_account_id
        self.client_factory = client_factory or self._default_client
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _default_client(self) -> Mastodon:
        return Mastodon(
            access_token=self.settings.mastodon_token.get_secret_value(),
            api_base_url=self.settings.mastodon_api_base,
        )

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="mastodon-stream", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        # stream_user blocks in a socket read; the daemon thread dies with the process.
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)

    def _stream_once(self, listener: RelayStreamListener) -> None:
        client = self.client_factory()
        if self.account_id is None:
            # The user stream is the home timeline; only the token owner's posts are relayed.
            account = client.account_verify_credentials()
            self.account_id = str(account["id"])
            log.info("watched_account_resolved", account_id=self.account_id, acct=account.get("acct"))
            if self.on_account is not None:
                self.on_account(self.account_id)
        log.info("stream_connecting", api_base=self.settings.mastodon_api_base, account_id=self.account_id)
        client.stream_user(listener)

    def _run(self) -> None:
        delay = self.settings.reconnect_min_delay
        while not self._stop.is_set():
            listener = RelayStreamListener(self.on_event)
            try:
                self._stream_once(listener)
                log.warning("stream_ended")
            except MastodonUnauthorizedError as e:
                log.error("stream_unauthorized", error=str(e))
                self.on_fatal(StreamFault(f"source stream rejected the access token: {e}"))
                return
            except MastodonError as e:
                log.error("stream_error", error=str(e))
            except Exception as e:
                log.exception("stream_unexpected_error", error=str(e))
            finally:
                stream_connected.set(0)

            if listener.events_received:
                delay = self.settings.reconnect_min_delay
            log.info("stream_reconnecting", retry_in=delay)
            if self._stop.wait(delay):
                break
            stream_reconnects_total.inc()
            delay = min(max(delay * 2, self.settings.reconnect_min_delay), self.settings.reconnect_max_delay)

        log.info("stream_stopped")
