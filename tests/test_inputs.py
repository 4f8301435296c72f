"""Tests for input reconciliation, overlays and display order."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from openwebif_tv.config import (
    DISPLAY_ORDER_NAME_ASC,
    DISPLAY_ORDER_NAME_DESC,
    DISPLAY_ORDER_REFERENCE_ASC,
    DISPLAY_ORDER_REFERENCE_DESC,
    BouquetConfig,
)
from openwebif_tv.errors import ParseError, ReconciliationWarning
from openwebif_tv.inputs import FALLBACK_NAME, FALLBACK_REFERENCE, InputReconciler, OverlayStore, flatten_bouquets
from openwebif_tv.models import VISIBILITY_HIDDEN, VISIBILITY_SHOWN, ChannelDescriptor
from openwebif_tv.storage import DeviceStorage


def _channel(name: str, reference: str | None = None, **kwargs) -> ChannelDescriptor:
    return ChannelDescriptor(name=name, reference=reference or f"ref:{name}", **kwargs)


def _make_reconciler(tmp_path=None, **kwargs) -> InputReconciler:
    overlays = OverlayStore(DeviceStorage(tmp_path, "192.168.1.20") if tmp_path else None)
    overlays.load()
    return InputReconciler(overlays, **kwargs)


# ---------------------------------------------------------------------------
# Candidate building
# ---------------------------------------------------------------------------


class TestFlattenBouquets:
    def test_collects_subservices_in_bouquet_order(self, services_payload):
        bouquets = [BouquetConfig(name="Radio", display_type=1, name_prefix=True), BouquetConfig(name="Favourites (TV)")]
        channels, warnings = flatten_bouquets(services_payload, bouquets)
        assert [channel.name for channel in channels] == ["Bayern 3", "Das Erste HD", "ZDF HD"]
        assert channels[0].display_type == 1
        assert channels[0].name_prefix is True
        assert channels[1].display_type == -1
        assert warnings == []

    def test_missing_bouquet_is_reported(self, services_payload):
        channels, warnings = flatten_bouquets(services_payload, [BouquetConfig(name="Sport")])
        assert channels == []
        assert warnings == ["Bouquet 'Sport' not found on device, skipped"]

    def test_payload_without_services(self):
        with pytest.raises(ParseError):
            flatten_bouquets({"result": True}, [BouquetConfig(name="Radio")])

    def test_reconciler_publishes_bouquet_warnings(self, services_payload):
        reconciler = InputReconciler(bouquets=[BouquetConfig(name="Sport")])
        listener = Mock()
        reconciler.notices.subscribe(listener)
        assert reconciler.build_candidates(services_payload) == []
        notice = listener.call_args.args[0]
        assert notice.level == "warn"
        assert isinstance(notice.cause, ReconciliationWarning)

    def test_static_mode_uses_configured_channels(self):
        configured = [_channel("A"), _channel("B")]
        reconciler = InputReconciler(channels=configured)
        assert reconciler.build_candidates() == configured


# ---------------------------------------------------------------------------
# reconcile()
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_empty_candidates_yield_fallback(self):
        reconciler = InputReconciler()
        added = reconciler.reconcile([])
        assert len(added) == 1
        assert added[0].reference == FALLBACK_REFERENCE
        assert added[0].name == FALLBACK_NAME
        assert added[0].identifier == 1

    def test_empty_candidates_keep_existing_inputs(self):
        reconciler = InputReconciler()
        reconciler.reconcile([_channel("A")])
        assert reconciler.reconcile([]) == []
        assert [entry.name for entry in reconciler.entries] == ["A"]

    def test_duplicates_first_wins(self):
        reconciler = InputReconciler()
        reconciler.reconcile([_channel("A", "r1"), _channel("B", "r2"), _channel("A again", "r1")])
        assert [(entry.identifier, entry.name) for entry in reconciler.entries] == [(1, "A"), (2, "B")]

    def test_invalid_entries_skipped_with_warning(self):
        reconciler = InputReconciler()
        listener = Mock()
        reconciler.notices.subscribe(listener)
        reconciler.reconcile([ChannelDescriptor(name="", reference="r1"), _channel("B", "r2")])
        assert [entry.reference for entry in reconciler.entries] == ["r2"]
        assert listener.call_args.args[0].level == "warn"

    def test_capacity_bounds_additions(self):
        reconciler = InputReconciler(capacity=3)
        added = reconciler.reconcile([_channel(str(index)) for index in range(5)])
        assert len(added) == 3
        assert len(reconciler) == 3
        assert reconciler.reconcile([_channel("extra")]) == []

    def test_rerun_with_same_candidates_is_a_no_op(self):
        reconciler = InputReconciler()
        listener = Mock()
        reconciler.inputs_changed.subscribe(listener)
        candidates = [_channel("A"), _channel("B")]
        reconciler.reconcile(candidates)
        assert reconciler.reconcile(candidates) == []
        assert listener.call_count == 1

    def test_name_change_updates_in_place(self):
        reconciler = InputReconciler()
        reconciler.reconcile([_channel("Old", "r1")])
        updated = reconciler.reconcile([_channel("New", "r1")])
        assert [(entry.identifier, entry.name) for entry in updated] == [(1, "New")]
        assert len(reconciler) == 1

    def test_remove_pass_deletes_listed_references(self):
        reconciler = InputReconciler()
        events = []
        reconciler.inputs_changed.subscribe(events.append)
        reconciler.reconcile([_channel("A", "r1"), _channel("B", "r2")])
        removed = reconciler.reconcile([_channel("A", "r1")], remove=True)
        assert [entry.reference for entry in removed] == ["r1"]
        assert [entry.reference for entry in reconciler.entries] == ["r2"]
        assert events[-1].remove is True

    def test_identifiers_never_reused(self):
        reconciler = InputReconciler()
        reconciler.reconcile([_channel("A", "r1"), _channel("B", "r2")])
        reconciler.reconcile([_channel("B", "r2")], remove=True)
        added = reconciler.reconcile([_channel("C", "r3")])
        assert added[0].identifier == 3

    def test_identifiers_follow_size_without_removals(self):
        reconciler = InputReconciler()
        reconciler.reconcile([_channel("A"), _channel("B")])
        added = reconciler.reconcile([_channel("C")])
        assert added[0].identifier == len(reconciler)

    def test_returned_entries_are_copies(self):
        reconciler = InputReconciler()
        added = reconciler.reconcile([_channel("A", "r1")])
        added[0].name = "Mutated"
        assert reconciler.by_reference("r1").name == "A"


# ---------------------------------------------------------------------------
# Overlays
# ---------------------------------------------------------------------------


class TestOverlays:
    def test_custom_name_and_visibility_applied(self, tmp_path):
        storage = DeviceStorage(tmp_path, "192.168.1.20")
        storage.save_names({"r1": "My Channel"})
        storage.save_visibility({"r1": VISIBILITY_HIDDEN})
        reconciler = _make_reconciler(tmp_path)
        reconciler.reconcile([_channel("Device Name", "r1")])
        entry = reconciler.by_reference("r1")
        assert entry.name == "My Channel"
        assert entry.hidden

    def test_rename_persists_and_survives_device_names(self, tmp_path):
        reconciler = _make_reconciler(tmp_path)
        reconciler.reconcile([_channel("Device Name", "r1")])
        assert reconciler.rename("r1", "  Custom  ") is True
        assert DeviceStorage(tmp_path, "192.168.1.20").load_names() == {"r1": "Custom"}
        assert reconciler.reconcile([_channel("Device Name", "r1")]) == []
        assert reconciler.by_reference("r1").name == "Custom"

    def test_rename_unchanged_is_a_no_op(self, tmp_path):
        reconciler = _make_reconciler(tmp_path)
        reconciler.reconcile([_channel("A", "r1")])
        reconciler.rename("r1", "B")
        listener = Mock()
        reconciler.inputs_changed.subscribe(listener)
        assert reconciler.rename("r1", "B") is False
        listener.assert_not_called()

    def test_rename_unknown_reference(self):
        reconciler = InputReconciler()
        with pytest.raises(KeyError):
            reconciler.rename("missing", "Name")

    def test_rename_empty_name(self):
        reconciler = InputReconciler()
        reconciler.reconcile([_channel("A", "r1")])
        with pytest.raises(ValueError):
            reconciler.rename("r1", "   ")

    def test_set_visibility_persists(self, tmp_path):
        reconciler = _make_reconciler(tmp_path)
        reconciler.reconcile([_channel("A", "r1")])
        assert reconciler.set_visibility("r1", True) is True
        assert reconciler.by_reference("r1").visibility == VISIBILITY_HIDDEN
        assert DeviceStorage(tmp_path, "192.168.1.20").load_visibility() == {"r1": VISIBILITY_HIDDEN}
        assert reconciler.set_visibility("r1", VISIBILITY_HIDDEN) is False
        assert reconciler.set_visibility("r1", VISIBILITY_SHOWN) is True

    def test_failed_write_leaves_overlay_unchanged(self):
        storage = Mock(spec=DeviceStorage)
        storage.save_names.side_effect = OSError("read-only file system")
        overlays = OverlayStore(storage)
        reconciler = InputReconciler(overlays)
        reconciler.reconcile([_channel("A", "r1")])
        with pytest.raises(OSError):
            reconciler.rename("r1", "B")
        assert overlays.name_for("r1") is None
        assert reconciler.by_reference("r1").name == "A"


# ---------------------------------------------------------------------------
# Display order and lookups
# ---------------------------------------------------------------------------


class TestDisplayOrder:
    CANDIDATES = [_channel("beta", "r2"), _channel("Alpha", "r3"), _channel("gamma", "r1")]

    @pytest.mark.parametrize(
        ("mode", "expected"),
        [
            (0, (1, 2, 3)),
            (DISPLAY_ORDER_NAME_ASC, (2, 1, 3)),
            (DISPLAY_ORDER_NAME_DESC, (3, 1, 2)),
            (DISPLAY_ORDER_REFERENCE_ASC, (3, 1, 2)),
            (DISPLAY_ORDER_REFERENCE_DESC, (2, 1, 3)),
        ],
    )
    def test_modes(self, mode, expected):
        reconciler = InputReconciler(display_order=mode)
        reconciler.reconcile(self.CANDIDATES)
        assert reconciler.display_order == expected

    def test_rename_reorders(self):
        reconciler = InputReconciler(display_order=DISPLAY_ORDER_NAME_ASC)
        reconciler.reconcile(self.CANDIDATES)
        orders = []
        reconciler.display_order_changed.subscribe(orders.append)
        reconciler.rename("r1", "aardvark")
        assert orders == [(3, 2, 1)]

    def test_lookups(self):
        reconciler = InputReconciler()
        reconciler.reconcile(self.CANDIDATES)
        assert reconciler.identifier_for("r3") == 2
        assert reconciler.by_identifier(2).name == "Alpha"
        assert reconciler.by_identifier(99) is None
        assert reconciler.by_reference("missing") is None
        assert reconciler.identifier_for("missing") is None
