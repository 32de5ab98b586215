"""Tests for the change feed and the NOTIFY listener's payload handling."""

import json

import pytest

from repairdesk.realtime import ChangeEvent, ChangeFeed, ChangeType, PostgresNotifyListener


def event(table="schedules", event_type=ChangeType.INSERT, **record):
    return ChangeEvent(table=table, event_type=event_type, record=record or None)


class TestChangeEvent:
    def test_from_payload(self):
        parsed = ChangeEvent.from_payload(json.dumps({
            "table": "finance_items",
            "type": "delete",
            "record": None,
            "old_record": {"id": 4},
        }))
        assert parsed.table == "finance_items"
        assert parsed.event_type is ChangeType.DELETE
        assert parsed.old_record == {"id": 4}

    @pytest.mark.parametrize("payload", [
        "not json",
        json.dumps([1, 2]),
        json.dumps({"type": "INSERT"}),
        json.dumps({"table": "schedules", "type": "TRUNCATE"}),
    ])
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValueError):
            ChangeEvent.from_payload(payload)


class TestChangeFeed:
    def test_callback_receives_matching_events(self):
        feed = ChangeFeed()
        received = []
        feed.subscribe("schedules", callback=received.append)

        assert feed.publish(event("schedules", id=1)) == 1
        assert feed.publish(event("profiles", id=2)) == 0
        assert [e.record["id"] for e in received] == [1]

    def test_wildcard_queue_subscription(self):
        feed = ChangeFeed()
        with feed.subscribe() as subscription:
            feed.publish(event("schedules"))
            feed.publish(event("finance_items", ChangeType.UPDATE))
            assert subscription.pending() == 2
            assert subscription.get(timeout=1).table == "schedules"
            assert subscription.get(timeout=1).event_type is ChangeType.UPDATE
            assert subscription.get(timeout=0.01) is None
        assert feed.subscriber_count == 0

    def test_unsubscribe_is_idempotent(self):
        feed = ChangeFeed()
        received = []
        subscription = feed.subscribe(callback=received.append)
        subscription.unsubscribe()
        subscription.unsubscribe()

        assert not subscription.active
        assert feed.publish(event()) == 0
        assert received == []

    def test_failing_callback_does_not_block_others(self):
        feed = ChangeFeed()
        received = []

        def broken(_):
            raise RuntimeError("boom")

        feed.subscribe(callback=broken)
        feed.subscribe(callback=received.append)

        assert feed.publish(event()) == 1
        assert len(received) == 1


class TestListenerPayloads:
    def test_valid_payload_is_published(self):
        feed = ChangeFeed()
        received = []
        feed.subscribe(callback=received.append)
        listener = PostgresNotifyListener(connect=lambda: None, feed=feed)

        result = listener.handle_payload(json.dumps({"table": "schedules", "type": "UPDATE", "record": {"id": 9}}))
        assert result.record == {"id": 9}
        assert len(received) == 1

    def test_malformed_payload_is_dropped(self):
        feed = ChangeFeed()
        received = []
        feed.subscribe(callback=received.append)
        listener = PostgresNotifyListener(connect=lambda: None, feed=feed)

        assert listener.handle_payload("{broken") is None
        assert received == []

    def test_close_without_connection(self):
        listener = PostgresNotifyListener(connect=lambda: None, feed=ChangeFeed())
        listener.stop()
        listener.close()
