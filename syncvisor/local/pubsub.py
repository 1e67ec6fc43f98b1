import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

log = logging.getLogger(__name__)


class EventHub:
    """
    A small publish/subscribe hub keyed by notification kind.

    Dispatch is synchronous on the publishing thread. Publishers include the
    process reader and exit-watcher threads, so subscribers must not assume
    they run on the thread that registered them.
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._subscribers: DefaultDict[str, List[Callable[..., Any]]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, kind: str, callback: Callable[..., Any]) -> Callable[..., Any]:
        """
        Registers a callback for one notification kind.

        :param kind: The notification kind to listen for.
        :param callback: Called with the notification payload, if the kind carries one.
        :return: The callback, so this can be used as a decorator.
        """
        with self._lock:
            self._subscribers[kind].append(callback)
        return callback

    def unsubscribe(self, kind: str, callback: Callable[..., Any]) -> bool:
        """Removes a callback. Returns False if it was not registered."""
        with self._lock:
            try:
                self._subscribers[kind].remove(callback)
                return True
            except ValueError:
                return False

    def publish(self, kind: str, *payload: Any) -> int:
        """
        Delivers a notification to every subscriber of `kind`, in registration order.

        A failing subscriber is logged and does not stop delivery to the others.

        :param kind: The notification kind.
        :param payload: Zero or one payload values passed to each subscriber.
        :return: The number of subscribers that were notified.
        """
        with self._lock:
            subscribers = list(self._subscribers.get(kind, ()))

        for callback in subscribers:
            try:
                callback(*payload)
            except Exception as e:
                log.error(f"Subscriber {callback!r} for '{kind}' on {self.name} failed: {e}", exc_info=True)
        return len(subscribers)
