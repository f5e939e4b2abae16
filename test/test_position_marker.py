"""
Position marker controller tests

Tests:
1. Single marker, created on the first sample, moved in place afterwards
2. Accuracy radius clamp
3. One camera flight, on marker creation only
4. Removal on tracking stop and host teardown
"""

import pytest

from cairn.core.positionMarker import MARKER_ID, MarkerOptions, PositionMarkerController
from cairnkit.geolocation import PositionSample


@pytest.fixture
def marker(host):
    controller = PositionMarkerController()
    controller.attach(host)
    return controller


class TestMarkerLifecycle:

    def test_two_samples_one_marker_at_second_position(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        marker.onSample(PositionSample(lat=45.42, lon=6.62, accuracy=12.0, altitude=1800.0))

        assert host.entityIds() == [MARKER_ID]
        entity = host.getEntity(MARKER_ID)
        assert entity.position.lat == 45.42
        assert entity.position.lon == 6.62
        assert entity.position.alt == 1800.0

    def test_updates_in_place(self, marker, host):
        events = []
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        host.addListener(lambda event, payload: events.append(event))
        marker.onSample(PositionSample(lat=45.41, lon=6.61, accuracy=10.0))
        assert 'entityAdded' not in events
        assert 'entityUpdated' in events

    def test_accuracy_radius_clamped(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=500.0))
        assert host.getEntity(MARKER_ID).ellipse.semiMajorAxis == 100.0

        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=35.0))
        ellipse = host.getEntity(MARKER_ID).ellipse
        assert ellipse.semiMajorAxis == 35.0
        assert ellipse.semiMinorAxis == 35.0

    def test_unusable_accuracy_gets_widest_radius(self, marker):
        assert marker.clampRadius(float('nan')) == 100.0
        assert marker.clampRadius(float('inf')) == 100.0
        assert marker.clampRadius(-3.0) == 100.0

    def test_tracking_stopped_removes_marker(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        marker.onTrackingStopped()
        assert host.entityIds() == []
        assert not marker.hasMarker

    def test_tracking_stopped_is_idempotent(self, marker, host):
        marker.onTrackingStopped()
        marker.onTrackingStopped()
        assert host.entityIds() == []

    def test_sample_without_host_is_ignored(self):
        controller = PositionMarkerController()
        controller.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        assert not controller.hasMarker

    def test_destroyed_host_drops_marker_reference(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        host.destroy()
        marker.onSample(PositionSample(lat=45.41, lon=6.61, accuracy=10.0))
        assert not marker.hasMarker
        assert marker.host is None

    def test_detach_removes_marker(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        marker.detach()
        assert host.entityIds() == []


class TestCameraFlight:

    def test_flies_once_on_first_sample(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        marker.onSample(PositionSample(lat=45.41, lon=6.61, accuracy=10.0))
        marker.onSample(PositionSample(lat=45.42, lon=6.62, accuracy=10.0))

        assert host.flightCount == 1
        view = host.getView()
        assert view.lat == 45.40
        assert view.lon == 6.60
        assert view.height == 5000.0

    def test_flies_again_after_restart(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        marker.onTrackingStopped()
        marker.onSample(PositionSample(lat=45.41, lon=6.61, accuracy=10.0))
        assert host.flightCount == 2

    def test_coarse_first_fix_skips_flight_when_limited(self, host):
        controller = PositionMarkerController(MarkerOptions(flyToMaxAccuracy=200.0))
        controller.attach(host)
        controller.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=2000.0))
        assert controller.hasMarker
        assert host.flightCount == 0

    @pytest.mark.asyncio
    async def test_flight_is_fire_and_forget(self, marker, host):
        marker.onSample(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        assert marker.flightInProgress
        assert host.isFlying

        marker.onSample(PositionSample(lat=45.41, lon=6.61, accuracy=10.0))
        assert host.getEntity(MARKER_ID).position.lat == 45.41
