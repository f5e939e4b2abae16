"""
POI entity reconciler tests

Tests:
1. Entity set matches the latest POI sequence (no orphans, empty clears)
2. Pick resolution: POI hit, non-POI hit, miss
3. Pick handler installed once per host, removed on teardown
4. Duplicate ids and POIs stored before a host exists
5. Entity styling
"""

from unittest.mock import MagicMock

import pytest

from cairn.core.models import Coordinates, PoiType, ScreenPosition
from cairn.core.poiLayer import (
    BILLBOARD_SCALE, PIN_COLORS, PoiEntityReconciler, buildPoiEntity, entityIdFor, pinIcon
)
from cairn.core.renderHost import EntitySpec, PointStyle

from conftest import OVERHEAD_VIEW, makePoi


@pytest.fixture
def onClick():
    return MagicMock()


@pytest.fixture
def layer(host, onClick):
    reconciler = PoiEntityReconciler(onPoiClick=onClick)
    reconciler.attach(host)
    return reconciler


class TestReconciliation:

    def test_entity_count_matches_input(self, layer, host, pois):
        layer.setPOIs(pois)
        assert layer.entityCount == 3
        assert set(host.entityIds()) == {entityIdFor(p.id) for p in pois}

    def test_full_replace_leaves_no_orphans(self, layer, host, pois):
        layer.setPOIs(pois)
        replacement = [makePoi('new-1', 45.41, 6.61), pois[1]]
        layer.setPOIs(replacement)

        assert set(host.entityIds()) == {'poi/new-1', 'poi/station-b'}

    def test_empty_sequence_clears(self, layer, host, pois):
        layer.setPOIs(pois)
        layer.setPOIs([])
        assert host.entityIds() == []
        assert layer.entityCount == 0

    def test_input_order_preserved(self, layer, host, pois):
        layer.setPOIs(reversed(pois))
        assert host.entityIds() == ['poi/resto-c', 'poi/station-b', 'poi/chalet-a']

    def test_duplicate_ids_first_wins(self, layer, host, pois):
        first = makePoi('dup', 45.40, 6.60, name='First')
        second = makePoi('dup', 45.43, 6.65, name='Second')
        layer.setPOIs([first, second])

        assert host.entityIds() == ['poi/dup']
        assert host.getEntity('poi/dup').name == 'First'
        assert layer.duplicatesSkipped == 1

    def test_other_components_entities_untouched(self, layer, host, pois):
        host.addEntity(EntitySpec(id='user-position', position=Coordinates(45.41, 6.64, 0.0), point=PointStyle()))
        layer.setPOIs(pois)
        layer.setPOIs([])
        assert host.entityIds() == ['user-position']

    def test_pois_before_attach_render_on_attach(self, host, pois):
        reconciler = PoiEntityReconciler()
        reconciler.setPOIs(pois)
        assert host.entityIds() == []

        reconciler.attach(host)
        assert len(host.entityIds()) == 3

    def test_destroyed_host_is_a_no_op(self, layer, host, pois):
        host.destroy()
        layer.setPOIs(pois)
        assert layer.host is None
        assert layer.pois == tuple(pois)


class TestPicking:

    def test_click_on_poi_yields_that_poi(self, layer, host, pois, onClick):
        layer.setPOIs(pois)
        host.dispatchClick(host.projectToScreen('poi/station-b'))
        onClick.assert_called_once_with(pois[1])

    def test_click_on_empty_space_ignored(self, layer, host, pois, onClick):
        layer.setPOIs(pois)
        host.dispatchClick(ScreenPosition(5.0, 5.0))
        onClick.assert_not_called()

    def test_click_on_non_poi_entity_ignored(self, layer, host, pois, onClick):
        layer.setPOIs(pois)
        host.addEntity(EntitySpec(id='user-position',
                                  position=Coordinates(OVERHEAD_VIEW.lat, OVERHEAD_VIEW.lon, 0.0),
                                  point=PointStyle(pixelSize=18.0), properties={'kind': 'userPosition'}))
        host.dispatchClick(ScreenPosition(640.0, 360.0))
        onClick.assert_not_called()

    def test_click_after_replacement_uses_new_records(self, layer, host, pois, onClick):
        layer.setPOIs(pois)
        renamed = makePoi('station-b', 45.43, 6.65, name='Station B renamed')
        layer.setPOIs([renamed])

        host.dispatchClick(host.projectToScreen('poi/station-b'))
        onClick.assert_called_once_with(renamed)
        assert onClick.call_args[0][0].name == 'Station B renamed'

    def test_removed_poi_no_longer_clickable(self, layer, host, pois, onClick):
        layer.setPOIs(pois)
        position = host.projectToScreen('poi/chalet-a')
        layer.setPOIs(pois[1:])
        host.dispatchClick(position)
        onClick.assert_not_called()

    def test_callback_error_does_not_escape(self, layer, host, pois):
        layer.setOnPoiClick(MagicMock(side_effect=RuntimeError('boom')))
        layer.setPOIs(pois)
        host.dispatchClick(host.projectToScreen('poi/chalet-a'))


class TestPickHandlerLifecycle:

    def test_handler_installed_once_across_updates(self, layer, host, pois):
        installs = []
        host.addListener(lambda event, payload: installs.append(event) if event == 'pickHandlerInstalled' else None)
        for _ in range(3):
            layer.setPOIs(pois)
        assert installs == []
        assert host.hasPickHandler

    def test_release_input_keeps_entities(self, layer, host, pois):
        layer.setPOIs(pois)
        layer.releaseInput()
        assert not host.hasPickHandler
        assert len(host.entityIds()) == 3

    def test_detach_removes_handler_then_entities(self, layer, host, pois):
        layer.setPOIs(pois)
        events = []
        host.addListener(lambda event, payload: events.append(event))
        layer.detach()

        assert events[0] == 'pickHandlerRemoved'
        assert host.entityIds() == []
        assert layer.host is None

    def test_attach_to_new_host_moves_entities(self, layer, host, pois):
        from cairn.core.headlessHost import HeadlessRenderHost

        layer.setPOIs(pois)
        other = HeadlessRenderHost()
        layer.attach(other)

        assert host.entityIds() == []
        assert not host.hasPickHandler
        assert len(other.entityIds()) == 3
        assert other.hasPickHandler


class TestStyling:

    def test_billboard_and_label(self):
        poi = makePoi('v', 45.9, 6.8, poiType=PoiType.VIEWPOINT, name='Aiguille du Midi')
        spec = buildPoiEntity(poi)

        assert spec.id == 'poi/v'
        assert spec.properties['poiId'] == 'v'
        assert spec.billboard.scale == BILLBOARD_SCALE
        assert spec.billboard.scaleByDistance.evaluate(1000.0) == 2.5
        assert spec.label.text == 'Aiguille du Midi'
        assert spec.label.pixelOffset == ScreenPosition(0.0, -50.0)

    def test_pin_color_per_type(self):
        assert PIN_COLORS[PoiType.CHALET] == '#8B4513'
        assert PIN_COLORS[PoiType.OTHER] == '#808080'
        assert pinIcon('#228B22').startswith('data:image/svg+xml')
        assert '228B22' in pinIcon('#228B22')
