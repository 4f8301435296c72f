"""Tests for the publish/subscribe event channels."""

from __future__ import annotations

from unittest.mock import Mock

from openwebif_tv.events import EventChannel


class TestEventChannel:
    def test_publish_reaches_all_listeners(self):
        channel = EventChannel("test")
        first, second = Mock(), Mock()
        channel.subscribe(first)
        channel.subscribe(second)
        channel.publish("event")
        first.assert_called_once_with("event")
        second.assert_called_once_with("event")
        assert len(channel) == 2

    def test_unsubscribe(self):
        channel = EventChannel("test")
        listener = Mock()
        unsubscribe = channel.subscribe(listener)
        unsubscribe()
        unsubscribe()
        channel.publish("event")
        listener.assert_not_called()

    def test_failing_listener_is_logged_and_skipped(self, mock_logger):
        channel = EventChannel("test", mock_logger)
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        channel.subscribe(failing)
        channel.subscribe(healthy)
        channel.publish("event")
        healthy.assert_called_once_with("event")
        mock_logger.error.assert_called_once()
