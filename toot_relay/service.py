import asyncio
import signal
import time
from collections import Counter
from typing import Optional, Set

from prometheus_client import start_http_server

from .config import Settings
from .errors import StreamFault
from .logging_setup import configure_logging, get_logger
from .metrics import stream_events_total, tasks_in_flight
from .models import RelayOutcome, StreamEvent
from .relay import PostRelay
from .stream import StreamRunner


log = get_logger(__name__)


class Service:
    """Owns the relay's lifecycle: stream runner, per-event tasks, shutdown.

    Events arrive on the streaming thread and are handed to the event loop
    in arrival order. Each one becomes an independent task that is never
    awaited by the dispatcher, so a slow or failing relay cannot hold up
    the stream.
    """

    def __init__(
        self,
        settings: Settings,
        relay: Optional[PostRelay] = None,
        runner: Optional[StreamRunner] = None,
    ) -> None:
        self.settings = settings
        self.relay = relay or PostRelay(settings)
        self.runner = runner or StreamRunner(
            settings, on_event=self.on_event, on_fatal=self.on_fatal, on_account=self.on_account
        )

        # Lifecycle primitives
        self.loop = asyncio.get_running_loop()
        self.stop_event = asyncio.Event()
        self.fault: Optional[StreamFault] = None

        # Relay tasks are referenced here until they finish
        self._inflight: Set[asyncio.Task] = set()
        self._tasks: list[asyncio.Task] = []

        # Counts since the last stats line
        self.events_received = 0
        self.outcomes: Counter = Counter()
        self._last_stats_time = time.monotonic()

    def on_event(self, event: StreamEvent) -> None:
        """Called from the streaming thread."""
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.dispatch, event)

    def on_account(self, account_id: str) -> None:
        """Called from the streaming thread once the watched account is known.

        Scheduled ahead of that connection's events, so no update is judged
        without it.
        """
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self._set_watched_account, account_id)

    def _set_watched_account(self, account_id: str) -> None:
        self.relay.watched_account_id = account_id

    def on_fatal(self, fault: StreamFault) -> None:
        """Called from the streaming thread when the stream cannot continue."""
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self._fail, fault)

    def _fail(self, fault: StreamFault) -> None:
        self.fault = fault
        self.stop_event.set()

    def dispatch(self, event: StreamEvent) -> asyncio.Task:
        """Start a relay task for ``event`` without waiting for it."""
        self.events_received += 1
        stream_events_total.labels(kind=event.kind.value).inc()

        task = self.loop.create_task(self.relay.handle(event))
        self._inflight.add(task)
        tasks_in_flight.inc()
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        tasks_in_flight.dec()
        if task.cancelled():
            return
        # PostRelay.handle never raises; anything else is a bug worth seeing.
        exc = task.exception()
        if exc is not None:
            log.error("relay_task_crashed", error=repr(exc))
            return
        self.outcomes[task.result()] += 1

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight relays; returns how many are still running."""
        pending = set(self._inflight)
        if not pending:
            return 0
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        return len(still_running)

    def _handle_signal(self) -> None:
        self.stop_event.set()

    async def start(self) -> None:
        """Start the metrics exporter, stream runner and background loops."""
        if self.settings.metrics_port:
            start_http_server(self.settings.metrics_port)
            log.info("metrics_server_started", port=self.settings.metrics_port)

        for sig in (signal.SIGINT, signal.SIGTERM):
            self.loop.add_signal_handler(sig, self._handle_signal)

        self.runner.start()
        self._tasks = [asyncio.create_task(self._periodic_stats_logger())]
        log.info("service_start", service=self.settings.service_name)

    def _log_stats(self) -> None:
        now = time.monotonic()
        elapsed = max(now - self._last_stats_time, 1e-6)
        log.info(
            "relay stats",
            events=self.events_received,
            events_per_second=round(self.events_received / elapsed, 2),
            in_flight=self.in_flight,
            posted=self.outcomes[RelayOutcome.POSTED],
            failed=self.outcomes[RelayOutcome.FAILED],
            skipped=self.outcomes[RelayOutcome.IGNORED] + self.outcomes[RelayOutcome.EMPTY],
        )
        self.events_received = 0
        self.outcomes.clear()
        self._last_stats_time = now

    async def _periodic_stats_logger(self) -> None:
        while not self.stop_event.is_set():
            await asyncio.sleep(self.settings.stats_interval)
            self._log_stats()

    async def run(self) -> None:
        """Run until a signal or a stream fault, then shut down.

        Raises the StreamFault that stopped the service, if any.
        """
        await self.start()
        await self.stop_event.wait()

        self.runner.stop()
        for t in self._tasks:
            t.cancel()

        left = await self.drain(timeout=self.settings.shutdown_grace)
        if left:
            log.warning("relays_abandoned", count=left)
        log.info("service_stop", service=self.settings.service_name)

        if self.fault is not None:
            raise self.fault


async def _run_service(settings: Settings) -> None:
    await Service(settings).run()


def main(settings: Settings) -> None:
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(_run_service(settings))
