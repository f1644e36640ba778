"""
EventBus for in-process pub/sub of brain events.

Each Brain owns one bus. Subscribers react to graph changes (e.g. refreshing
a prompt cache after a commit) without the store knowing about them.

Event types are dotted names (``node.created``, ``delta.committed``). A
subscription pattern is either an exact type, a namespace prefix ending in
``.*`` (``delta.*`` matches every delta event) or ``*`` for everything.

Usage:
    brain.events.subscribe('delta.committed', lambda event: print(event.delta_hash))
    brain.events.subscribe('node.*', refresh_prompt_cache)
"""

import logging
import queue
import time
from threading import Lock, Thread
from typing import Any, Callable, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]


def pattern_matches(pattern: str, event_type: str) -> bool:
    if pattern == "*" or pattern == event_type:
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return False


class EventBus:
    """
    Thread-safe in-process event bus.

    Callbacks run synchronously on the publishing thread, in subscription
    order. A failing subscriber is logged and never propagates into the
    publisher, so a broken listener cannot fail a commit.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callback]] = {}
        self._lock = Lock()

    def subscribe(self, pattern: str, callback: Callback) -> None:
        """
        Register a callback for every event matching ``pattern``.

        Args:
            pattern: Event type, ``namespace.*`` or ``*``
            callback: Called with the event object
        """
        with self._lock:
            self._subscribers.setdefault(pattern, []).append(callback)
        logger.debug(f"Subscribed {getattr(callback, '__name__', repr(callback))} to {pattern}")

    def unsubscribe(self, pattern: str, callback: Callback) -> bool:
        """Remove a callback. Returns True if it was subscribed."""
        with self._lock:
            callbacks = self._subscribers.get(pattern, [])
            if callback not in callbacks:
                return False
            callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(pattern)
        return True

    def publish(self, event: Any) -> int:
        """
        Deliver an event to every matching subscriber.

        Args:
            event: Event object with an ``event_type`` attribute

        Returns:
            Number of callbacks that ran without raising
        """
        event_type = getattr(event, "event_type", None)
        if not event_type:
            logger.warning(f"Dropping {type(event).__name__}: no event_type")
            return 0

        with self._lock:
            targets = [cb for pattern, cbs in self._subscribers.items()
                       if pattern_matches(pattern, event_type) for cb in cbs]

        delivered = 0
        for callback in targets:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber failed on {event_type}: {e}", exc_info=True)

        logger.debug(f"{event_type}: {delivered}/{len(targets)} subscribers")
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscribers = {}

    def subscriber_count(self, pattern: Optional[str] = None) -> int:
        with self._lock:
            if pattern is not None:
                return len(self._subscribers.get(pattern, []))
            return sum(map(len, self._subscribers.values()))


class WebhookDispatcher:
    """
    Forwards brain events to an HTTP endpoint.

    Each event is POSTed as ``{"project": ..., "event": event.to_dict()}``.
    Deliveries go through one background worker so the endpoint sees events
    in publish order and graph operations never wait on the network.
    Connection errors, timeouts and 5xx responses are retried with
    exponential backoff; a 4xx response is final.

    Usage:
        dispatcher = WebhookDispatcher(brain.events, "https://example.com/hook",
                                       event_types=["delta.*"], project="my-app")
        dispatcher.start()
        ...
        dispatcher.stop()
    """

    def __init__(
        self,
        bus: EventBus,
        webhook_url: str,
        event_types: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
        project: Optional[str] = None,
        timeout: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.bus = bus
        self.webhook_url = webhook_url
        self.event_types = list(event_types or ["*"])
        self.headers = dict(headers or {})
        self.project = project
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._worker: Optional[Thread] = None

    def payload(self, event: Any) -> Dict[str, Any]:
        body = event.to_dict() if hasattr(event, "to_dict") else {"event_type": event.event_type}
        return {"project": self.project, "event": body}

    def send(self, event: Any) -> bool:
        """
        Deliver one event synchronously.

        Returns:
            True once the endpoint accepted the event
        """
        headers = {"Content-Type": "application/json", **self.headers}
        body = self.payload(event)
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                response = requests.post(self.webhook_url, json=body, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                logger.debug(f"Delivered {event.event_type} to {self.webhook_url}")
                return True
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status is not None and 400 <= status < 500:
                    logger.error(f"Webhook rejected {event.event_type} with {status}")
                    return False
                error: Exception = e
            except requests.RequestException as e:
                error = e

            if attempt + 1 == attempts:
                logger.error(f"Giving up on {event.event_type} after {attempts} attempts: {error}")
                break
            wait = self.retry_delay * 2 ** attempt
            logger.warning(f"Webhook attempt {attempt + 1}/{attempts} failed ({error}); retrying in {wait}s")
            time.sleep(wait)
        return False

    def wants(self, event_type: str) -> bool:
        return any(pattern_matches(p, event_type) for p in self.event_types)

    def _enqueue(self, event: Any) -> None:
        # One bus subscription; overlapping patterns still forward an event once
        if self.wants(event.event_type):
            self._queue.put(event)

    def _drain(self) -> None:
        while True:
            event = self._queue.get()
            if event is None:
                return
            self.send(event)

    def start(self) -> None:
        if self._worker is not None:
            return
        self.bus.subscribe("*", self._enqueue)
        self._worker = Thread(target=self._drain, name="codebrain-webhook", daemon=True)
        self._worker.start()
        logger.info(f"Forwarding {', '.join(self.event_types)} to {self.webhook_url}")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Unsubscribe, then let the worker finish events already queued."""
        if self._worker is None:
            return
        self.bus.unsubscribe("*", self._enqueue)
        self._queue.put(None)
        self._worker.join(timeout)
        self._worker = None

    def is_active(self) -> bool:
        return self._worker is not None
