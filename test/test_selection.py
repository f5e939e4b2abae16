"""
Selection state and detail view tests

Tests:
1. select opens immediately, close hides immediately and clears after the delay
2. A new selection cancels a pending clear
3. Detail view formatting and external map link
"""

import asyncio

import pytest

from cairn.core.models import Coordinates, Poi, PoiType
from cairn.core.selection import PoiDetailView, SelectionState, buildMapSearchUrl

from conftest import makePoi


@pytest.fixture
def selection():
    state = SelectionState(clearDelay=0.05)
    yield state
    state.dispose()


class TestSelectionState:

    def test_select_opens_popup(self, selection, pois):
        selection.select(pois[0])
        assert selection.popupOpen
        assert selection.selectedPoi is pois[0]

    @pytest.mark.asyncio
    async def test_close_clears_after_delay(self, selection, pois):
        selection.select(pois[0])
        selection.requestClose()

        assert not selection.popupOpen
        assert selection.selectedPoi is pois[0]
        assert selection.hasPendingClear

        await asyncio.sleep(0.1)
        assert selection.selectedPoi is None
        assert not selection.hasPendingClear

    @pytest.mark.asyncio
    async def test_select_during_delay_keeps_new_poi(self, selection, pois):
        selection.select(pois[0])
        selection.requestClose()
        selection.select(pois[1])

        await asyncio.sleep(0.1)
        assert selection.selectedPoi is pois[1]
        assert selection.popupOpen

    @pytest.mark.asyncio
    async def test_reselect_same_poi_during_delay(self, selection, pois):
        selection.select(pois[0])
        selection.requestClose()
        selection.select(pois[0])

        await asyncio.sleep(0.1)
        assert selection.selectedPoi is pois[0]
        assert selection.popupOpen

    def test_close_without_loop_clears_immediately(self, selection, pois):
        selection.select(pois[0])
        selection.requestClose()
        assert selection.selectedPoi is None

    def test_close_when_closed_is_noop(self, selection):
        notified = []
        selection.addListener(lambda state: notified.append(state.popupOpen))
        selection.requestClose()
        assert notified == []

    def test_listeners_notified(self, selection, pois):
        notified = []
        selection.addListener(lambda state: notified.append(state.popupOpen))
        selection.select(pois[0])
        selection.requestClose()
        assert notified == [True, False]

    def test_snapshot(self, selection, pois):
        assert selection.snapshot() == {'selectedPoi': None, 'popupOpen': False}
        selection.select(pois[0])
        snapshot = selection.snapshot()
        assert snapshot['popupOpen'] is True
        assert snapshot['selectedPoi']['id'] == 'chalet-a'


class TestDetailView:

    def test_formatting(self):
        poi = Poi(id='v', name='La Saulire', type=PoiType.VIEWPOINT,
                  coordinates=Coordinates(lat=45.3978, lon=6.5823, alt=2738.4),
                  description='Vue panoramique', photo='https://example.org/saulire.jpg')
        view = PoiDetailView.fromPoi(poi)

        assert view.typeLabel == 'Point de Vue'
        assert view.latitude == '45.397800°'
        assert view.longitude == '6.582300°'
        assert view.altitude == '2738 m'
        assert view.description == 'Vue panoramique'
        assert view.photo == 'https://example.org/saulire.jpg'
        assert view.toDict()['mapUrl'] == 'https://www.google.com/maps/search/?api=1&query=45.3978,6.5823'

    def test_optional_fields_absent(self):
        view = PoiDetailView.fromPoi(makePoi('c', 45.0, 6.0, poiType=PoiType.OTHER))
        assert view.typeLabel == 'Autre'
        assert view.description is None
        assert view.photo is None

    def test_map_url_for_whole_degrees(self):
        assert buildMapSearchUrl(makePoi('c', 45.0, 6.0)).endswith('query=45,6')

    def test_no_detail_without_selection(self, selection):
        assert selection.detailView() is None
