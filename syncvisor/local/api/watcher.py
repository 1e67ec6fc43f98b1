import logging
import threading
from typing import Any, Callable, List, Optional

from syncvisor.local import effective_settings as config
from syncvisor.local.pubsub import EventHub
from syncvisor.local.api.client import SyncthingApiClient
from syncvisor.local.api.errors import ApiConnectionError, ApiResponseError, ProtocolMismatchError
from syncvisor.local.api.models import ANY_EVENT, Event

log = logging.getLogger(__name__)


class EventWatcher:
    """
    Long-polls Syncthing's event log and dispatches each event once, in id order.

    Subscribers register per event type (see `models.EventType`) or for
    `ANY_EVENT`, and are called on the watcher thread with the `Event`.
    """

    def __init__(
        self,
        client: SyncthingApiClient,
        limit: Optional[int] = None,
        retry_interval: Optional[float] = None,
        skip_backlog: bool = False,
    ) -> None:
        """
        :param client: The API client selected for the running Syncthing version.
        :param limit: Maximum number of events per poll (None for no limit).
        :param retry_interval: Seconds to wait after a failed poll.
        :param skip_backlog: If True, events that happened before the first poll are not dispatched.
        """
        self.client = client
        self.limit = limit or None
        self.retry_interval = retry_interval if retry_interval is not None else config.EVENT_RETRY_INTERVAL_SECONDS
        self.skip_backlog = skip_backlog
        self.events = EventHub(name="syncthing-events")
        self.last_event_id = 0
        self._resets = 0

        self._cursor_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def subscribe(self, event_type: str, callback: Callable[[Event], Any]) -> Callable[[Event], Any]:
        return self.events.subscribe(event_type, callback)

    def unsubscribe(self, event_type: str, callback: Callable[[Event], Any]) -> bool:
        return self.events.unsubscribe(event_type, callback)

    def reset(self) -> None:
        """
        Forgets the cursor. Call this when Syncthing restarts, since its event ids start over.

        A poll already in flight against the old process is discarded when it returns.
        """
        with self._cursor_lock:
            log.debug(f"Resetting event cursor (was {self.last_event_id})")
            self.last_event_id = 0
            self._resets += 1

    def _skip_to_latest(self) -> None:
        with self._cursor_lock:
            resets = self._resets
        latest = self.client.fetch_events(since=0, limit=1)
        with self._cursor_lock:
            if self._resets != resets:
                return
            if latest:
                self.last_event_id = max(event.id for event in latest)
            log.debug(f"Skipping event backlog, starting after event {self.last_event_id}")
        self.skip_backlog = False

    def poll_once(self) -> int:
        """
        Fetches one batch of events and dispatches the ones not seen yet.

        :return: The number of events dispatched.
        :raises ApiError: If the fetch fails.
        """
        if self.skip_backlog and self.last_event_id == 0:
            self._skip_to_latest()

        with self._cursor_lock:
            since = self.last_event_id
            resets = self._resets
        batch = self.client.fetch_events(since=since, limit=self.limit)

        fresh: List[Event] = []
        with self._cursor_lock:
            if self._resets != resets:
                log.debug(f"Discarding {len(batch)} events fetched before the cursor was reset")
                return 0
            for event in sorted(batch, key=lambda e: e.id):
                if event.id <= self.last_event_id:
                    log.debug(f"Discarding duplicate event {event.id} ({event.type})")
                    continue
                fresh.append(event)
                self.last_event_id = event.id

        for event in fresh:
            self.events.publish(event.type, event)
            self.events.publish(ANY_EVENT, event)
        return len(fresh)

    #* --- Background Loop ---
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="SyncthingEventWatcher")
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Asks the loop to stop and waits for it.

        A poll already in flight finishes first, which can take up to the
        client's timeout.
        """
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self) -> None:
        """Target for the watcher thread."""
        log.info(f"Watching Syncthing events via {self.client!r}")
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except ApiConnectionError as e:
                log.debug(f"Event poll failed, retrying in {self.retry_interval}s: {e}")
                self._stop_event.wait(self.retry_interval)
            except ApiResponseError as e:
                log.warning(f"Event poll rejected by Syncthing, retrying in {self.retry_interval}s: {e}")
                self._stop_event.wait(self.retry_interval)
            except ProtocolMismatchError as e:
                log.critical(f"Event stream does not match the selected API version; stopping: {e}", exc_info=True)
                break
        log.info("Syncthing event watcher has stopped.")
