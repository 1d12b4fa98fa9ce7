# Overview: Pytest coverage for stock-change broadcast and its transports.

import json

import pytest

from storepos.services.stock_notifier import (
    InProcessPublisher,
    RedisPublisher,
    StockChange,
    StockChangeNotifier,
    stock_topic,
)


class RecordingPublisher:
    def __init__(self, fail_after=None):
        self.events = []
        self.fail_after = fail_after

    def publish(self, topic, event):
        if self.fail_after is not None and len(self.events) >= self.fail_after:
            raise ConnectionError("transport down")
        self.events.append((topic, event))


class FakeRedisPubSubClient:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 1


def test_stock_change_event_shape():
    assert StockChange(product_id=4, stock=2).to_event() == {
        "type": "stock:update",
        "productId": 4,
        "stock": 2,
    }


def test_topic_is_per_store():
    assert stock_topic(3) == "store:3:stock"


def test_notifier_publishes_in_order():
    publisher = RecordingPublisher()
    notifier = StockChangeNotifier(publisher)

    count = notifier.publish_stock_changes(1, [StockChange(5, 9), StockChange(6, 0)])

    assert count == 2
    assert publisher.events == [
        ("store:1:stock", {"type": "stock:update", "productId": 5, "stock": 9}),
        ("store:1:stock", {"type": "stock:update", "productId": 6, "stock": 0}),
    ]


def test_notifier_swallows_transport_failure(caplog):
    publisher = RecordingPublisher(fail_after=1)
    notifier = StockChangeNotifier(publisher)

    with caplog.at_level("WARNING", logger="storepos.services.stock_notifier"):
        count = notifier.publish_stock_changes(1, [StockChange(5, 9), StockChange(6, 0)])

    assert count == 1
    assert "publish failed" in caplog.text


def test_notifier_with_no_changes_publishes_nothing():
    publisher = RecordingPublisher()
    assert StockChangeNotifier(publisher).publish_stock_changes(1, []) == 0
    assert publisher.events == []


class TestInProcessPublisher:
    def test_subscribers_receive_only_their_topic(self):
        publisher = InProcessPublisher()
        store_one = publisher.subscribe("store:1:stock")
        store_two = publisher.subscribe("store:2:stock")

        publisher.publish("store:1:stock", {"stock": 1})

        assert store_one.get(timeout=0.1) == {"stock": 1}
        assert store_two.get(timeout=0.01) is None

    def test_every_subscriber_gets_a_copy(self):
        publisher = InProcessPublisher()
        a = publisher.subscribe("t")
        b = publisher.subscribe("t")

        publisher.publish("t", {"n": 1})

        assert a.get(timeout=0.1) == {"n": 1}
        assert b.get(timeout=0.1) == {"n": 1}

    def test_close_unsubscribes(self):
        publisher = InProcessPublisher()
        subscription = publisher.subscribe("t")
        assert publisher.subscriber_count("t") == 1

        subscription.close()

        assert publisher.subscriber_count("t") == 0
        publisher.publish("t", {"n": 1})

    def test_slow_subscriber_drops_when_full(self):
        publisher = InProcessPublisher(max_queue=2)
        slow = publisher.subscribe("t")

        for n in range(5):
            publisher.publish("t", {"n": n})

        assert slow.dropped == 3
        assert [slow.get(timeout=0.1), slow.get(timeout=0.1)] == [{"n": 0}, {"n": 1}]


def test_redis_publisher_sends_json():
    client = FakeRedisPubSubClient()
    RedisPublisher(client).publish("store:1:stock", {"type": "stock:update", "productId": 2, "stock": 3})

    channel, message = client.published[0]
    assert channel == "store:1:stock"
    assert json.loads(message) == {"type": "stock:update", "productId": 2, "stock": 3}


@pytest.mark.parametrize("changes,expected", [
    ([StockChange(1, 0)], 1),
    ([StockChange(1, 0), StockChange(2, 5), StockChange(3, 7)], 3),
])
def test_notifier_counts(changes, expected):
    assert StockChangeNotifier(RecordingPublisher()).publish_stock_changes(9, changes) == expected
