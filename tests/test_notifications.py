"""Tests for the notification hub."""

import logging

import pytest

from production_tracker.errors import InvalidStateError
from production_tracker.notifications import NotificationHub


def test_publish_reaches_subscribers():
    hub = NotificationHub()
    received = []
    hub.subscribe(lambda topic, payload: received.append((topic, payload)))
    hub.publish("order-changed", {"id": "1"})
    assert received == [("order-changed", {"id": "1"})]


def test_unsubscribe():
    hub = NotificationHub()
    received = []
    unsubscribe = hub.subscribe(lambda topic, payload: received.append(topic))
    unsubscribe()
    unsubscribe()
    hub.publish("order-changed", {})
    assert received == []


def test_failing_subscriber_is_logged_and_skipped(hub, caplog):
    received = []

    def broken(topic, payload):
        raise RuntimeError("socket closed")

    hub.subscribe(broken)
    hub.subscribe(lambda topic, payload: received.append(topic))
    with caplog.at_level(logging.WARNING):
        hub.publish("card-changed", {"id": "c1"})
    assert received == ["card-changed"]
    assert hub.topics() == ["card-changed"]
    assert "card-changed" in caplog.text


def test_lifecycle_failure_is_not_published(service, catalog, hub, due_date):
    order = service.orders.create_order(catalog.model.id, 1, "Acme", due_date).order
    hub.events.clear()
    with pytest.raises(InvalidStateError):
        service.orders.pause(order.id)
    assert hub.events == []
