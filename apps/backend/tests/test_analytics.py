from __future__ import annotations

import pytest
from pydantic import ValidationError

from homelink.analytics.aggregator import AnalyticsAggregator
from homelink.analytics.events import GeofenceEvent, SnapshotCaptureEvent


def test_records_are_tagged_by_kind() -> None:
    analytics = AnalyticsAggregator()
    analytics.record({"kind": "stream_access", "device_id": "dev-1", "success": True})
    analytics.record(SnapshotCaptureEvent(device_id="dev-1", success=False))
    analytics.record(GeofenceEvent(geofence_id="geo-1", entered=True))

    counts = analytics.counts()
    assert counts["stream_access"] == 1
    assert counts["snapshot_capture"] == 1
    assert counts["geofence_event"] == 1
    assert counts["authentication"] == 0
    assert analytics.events("stream_access")[0].device_id == "dev-1"


def test_unknown_kind_is_rejected() -> None:
    analytics = AnalyticsAggregator()
    with pytest.raises(ValidationError):
        analytics.record({"kind": "telemetry_dump", "payload": {}})


def test_event_log_is_bounded() -> None:
    analytics = AnalyticsAggregator(max_events=3)
    for index in range(5):
        analytics.record({"kind": "device_count", "count": index})
    assert [event.count for event in analytics.events()] == [2, 3, 4]


def test_feature_and_device_counters() -> None:
    analytics = AnalyticsAggregator()
    for feature in ("snapshot", "live_stream", "snapshot"):
        analytics.track_feature(feature)
    for device_id in ("dev-1", "dev-2", "dev-1", "dev-1"):
        analytics.track_interaction(device_id)

    assert analytics.most_used_feature() == "snapshot"
    assert analytics.top_devices(1) == [("dev-1", 3)]
    summary = analytics.summary()
    assert summary["most_used_feature"] == "snapshot"
    assert summary["top_devices"][0] == {"device_id": "dev-1", "interactions": 3}


def test_reset_clears_everything() -> None:
    analytics = AnalyticsAggregator()
    analytics.record({"kind": "authentication", "success": True})
    analytics.track_feature("siren")
    analytics.reset()
    assert analytics.events() == []
    assert analytics.most_used_feature() is None
    assert analytics.feature_usage() == {}
