"""
Row-change notifications.

ChangeFeed is an in-process publish/subscribe hub. Consumers subscribe to a
table (or "*") and receive ChangeEvents either through a callback or by
reading the subscription's own queue:

    feed = ChangeFeed()
    with feed.subscribe("schedules") as sub:
        event = sub.get(timeout=5)

    sub = feed.subscribe("finance_items", callback=on_change)
    ...
    sub.unsubscribe()

PostgresNotifyListener feeds it from PostgreSQL LISTEN/NOTIFY (see
PostgresRepository.install_change_triggers for the sending side).
"""

import json
import logging
import queue
import select
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ALL_TABLES = "*"


class ChangeType(Enum):
    """Kind of row change."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """One row change on a table."""
    table: str
    event_type: ChangeType
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None
    received_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_payload(cls, payload: str) -> "ChangeEvent":
        """
        Parse a NOTIFY payload: {"table", "type", "record", "old_record"}.

        Raises ValueError if the payload is not a valid change message.
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"Change payload is not JSON: {e}")

        if not isinstance(data, dict) or not data.get("table"):
            raise ValueError("Change payload needs a 'table' field")

        try:
            event_type = ChangeType(str(data.get("type", "")).upper())
        except ValueError:
            raise ValueError(f"Unknown change type: {data.get('type')}")

        return cls(
            table=data["table"],
            event_type=event_type,
            record=data.get("record"),
            old_record=data.get("old_record"),
        )


class Subscription:
    """
    A live subscription to one table (or all tables).

    Events are delivered to the callback when one was given, otherwise
    queued for get(). unsubscribe() is idempotent.
    """

    def __init__(self, feed: "ChangeFeed", table: str,
                 callback: Optional[Callable[[ChangeEvent], None]] = None):
        self.feed = feed
        self.table = table
        self.callback = callback
        self._queue: "queue.Queue[ChangeEvent]" = queue.Queue()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, event: ChangeEvent) -> bool:
        return self.table == ALL_TABLES or self.table == event.table

    def deliver(self, event: ChangeEvent) -> None:
        if not self._active:
            return
        if self.callback is not None:
            self.callback(event)
        else:
            self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next queued event, or None if none arrives within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self.feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.unsubscribe()


class ChangeFeed:
    """In-process hub that fans change events out to subscriptions."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, table: str = ALL_TABLES,
                  callback: Optional[Callable[[ChangeEvent], None]] = None) -> Subscription:
        subscription = Subscription(self, table, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to {table}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        logger.debug(f"Unsubscribed from {subscription.table}")

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every matching subscription.

        A failing callback is logged and does not stop delivery to the
        others. Returns the number of subscriptions the event reached.
        """
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Change callback for {subscription.table} failed: {e}")
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class PostgresNotifyListener:
    """
    Publishes PostgreSQL NOTIFY messages into a ChangeFeed.

    Workflow:
    1. Open a dedicated autocommit connection and LISTEN on the channel
    2. Wait on the socket until a notification arrives (or timeout)
    3. Parse each payload into a ChangeEvent and publish it
    """

    def __init__(self, connect: Callable[[], Any], feed: ChangeFeed,
                 channel: str = "repairdesk_changes"):
        """
        Args:
            connect: Zero-argument callable returning a new psycopg2 connection
                     (e.g. PostgresRepository.connect)
            feed: Feed to publish into
            channel: NOTIFY channel name
        """
        self.connect = connect
        self.feed = feed
        self.channel = channel
        self._conn = None
        self._stopped = threading.Event()

    def start(self) -> None:
        """Open the listening connection."""
        from psycopg2 import sql
        from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

        self._conn = self.connect()
        self._conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        cursor = self._conn.cursor()
        cursor.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
        logger.info(f"Listening for changes on channel '{self.channel}'")

    def handle_payload(self, payload: str) -> Optional[ChangeEvent]:
        """Parse and publish one payload; malformed payloads are logged and dropped."""
        try:
            event = ChangeEvent.from_payload(payload)
        except ValueError as e:
            logger.warning(f"Ignoring malformed change payload: {e}")
            return None
        self.feed.publish(event)
        return event

    def run_once(self, timeout: float = 5.0) -> int:
        """
        Wait up to timeout seconds and publish whatever arrived.

        Returns:
            Number of events published
        """
        if self._conn is None:
            self.start()

        ready, _, _ = select.select([self._conn], [], [], timeout)
        if not ready:
            return 0

        self._conn.poll()
        published = 0
        while self._conn.notifies:
            notify = self._conn.notifies.pop(0)
            if self.handle_payload(notify.payload) is not None:
                published += 1
        return published

    def run(self, poll_interval: float = 5.0) -> None:
        """Run until stop() is called or Ctrl+C."""
        logger.info("Starting change listener (Ctrl+C to stop)")
        try:
            while not self._stopped.is_set():
                try:
                    self.run_once(timeout=poll_interval)
                except Exception as e:
                    # Connection dropped: reconnect on the next pass
                    logger.error(f"Listener error: {e}")
                    self.close()
                    time.sleep(poll_interval)
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            self.close()

    def stop(self) -> None:
        self._stopped.set()

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None
