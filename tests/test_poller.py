"""Tests for status parsing and the change-detecting poller."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from openwebif_tv.errors import Unreachable
from openwebif_tv.models import Snapshot
from openwebif_tv.poller import StatePoller, parse_status

pytestmark = pytest.mark.anyio


def _make_poller(*payloads, logger=None):
    client = Mock()
    client.get_status = AsyncMock(side_effect=list(payloads))
    return StatePoller(client, logger=logger), client


# ---------------------------------------------------------------------------
# parse_status
# ---------------------------------------------------------------------------


class TestParseStatus:
    def test_powered_on(self, status_payload):
        snapshot = parse_status(status_payload)
        assert snapshot == Snapshot(
            power=True,
            name="Das Erste HD",
            event_name="Tagesschau",
            reference="1:0:19:283D:3FB:1:C00000:0:0:0:",
            volume=40,
            mute=False,
        )

    def test_standby_forces_mute(self, make_status):
        snapshot = parse_status(make_status(inStandby="true", muted=False))
        assert snapshot.power is False
        assert snapshot.mute is True

    @pytest.mark.parametrize("value", [False, "False", "FALSE", None, 0])
    def test_power_needs_exact_false_string(self, make_status, value):
        assert parse_status(make_status(inStandby=value)).power is False

    @pytest.mark.parametrize("muted", [True, "true", "True"])
    def test_mute_accepts_bool_or_string(self, make_status, muted):
        assert parse_status(make_status(muted=muted)).mute is True

    def test_volume_string_and_clamping(self, make_status):
        assert parse_status(make_status(volume="55")).volume == 55
        assert parse_status(make_status(volume=250)).volume == 100
        assert parse_status(make_status(volume=-3)).volume == 0
        assert parse_status(make_status(volume="loud")).volume == 0

    def test_missing_service_fields(self):
        snapshot = parse_status({"inStandby": "false"})
        assert snapshot.name == ""
        assert snapshot.event_name == ""
        assert snapshot.reference == ""


# ---------------------------------------------------------------------------
# StatePoller
# ---------------------------------------------------------------------------


class TestStatePoller:
    async def test_first_poll_always_publishes(self):
        poller, _client = _make_poller({"inStandby": "true"})
        listener = Mock()
        poller.state_changed.subscribe(listener)
        # Parses to the initial snapshot, still published
        assert await poller.poll() is True
        listener.assert_called_once()
        assert listener.call_args.args[0].snapshot == Snapshot()

    async def test_unchanged_poll_is_silent(self, status_payload):
        poller, _client = _make_poller(status_payload, dict(status_payload))
        listener = Mock()
        poller.state_changed.subscribe(listener)
        assert await poller.poll() is True
        assert await poller.poll() is False
        assert listener.call_count == 1

    async def test_single_field_change_publishes_full_tuple(self, make_status):
        poller, _client = _make_poller(make_status(), make_status(volume=41))
        events = []
        poller.state_changed.subscribe(events.append)
        await poller.poll()
        await poller.poll()
        assert len(events) == 2
        assert events[1].snapshot.volume == 41
        assert events[1].snapshot.name == "Das Erste HD"
        assert poller.snapshot.volume == 41

    async def test_failure_keeps_snapshot(self, status_payload):
        poller, _client = _make_poller(status_payload, Unreachable("192.168.1.20", 80))
        await poller.poll()
        before = poller.snapshot
        with pytest.raises(Unreachable):
            await poller.poll()
        assert poller.snapshot is before

    async def test_reset_republishes_unchanged_state(self, status_payload):
        poller, _client = _make_poller(status_payload, status_payload)
        listener = Mock()
        poller.state_changed.subscribe(listener)
        await poller.poll()
        poller.reset()
        assert await poller.poll() is True
        assert listener.call_count == 2

    async def test_fetch_does_not_touch_snapshot(self, make_status):
        poller, _client = _make_poller(make_status(inStandby="true"))
        fetched = await poller.fetch()
        assert fetched.power is False
        assert poller.snapshot == Snapshot()
