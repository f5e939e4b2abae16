"""
Shared fixtures: a small POI collection around Courchevel and a headless render
host looking straight down on it.
"""

import asyncio

import pytest

from cairn.core.headlessHost import HeadlessRenderHost
from cairn.core.models import CameraView, Coordinates, Poi, PoiType


# Camera 20 km above the POIs, north up
OVERHEAD_VIEW = CameraView(lon=6.64, lat=45.41, height=20000.0, heading=0.0, pitch=-90.0, roll=0.0)


def makePoi(poiId, lat, lon, alt=1800.0, poiType=PoiType.CHALET, name=None):
    return Poi(id=poiId, name=name or poiId, type=poiType, coordinates=Coordinates(lat=lat, lon=lon, alt=alt))


async def settle(iterations: int = 20):
    """Let scheduled callbacks and freshly created tasks run"""
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.fixture
def pois():
    return [
        makePoi('chalet-a', 45.40, 6.60, poiType=PoiType.CHALET, name='Chalet A'),
        makePoi('station-b', 45.43, 6.65, poiType=PoiType.SKI_STATION, name='Station B'),
        makePoi('resto-c', 45.38, 6.68, poiType=PoiType.RESTAURANT, name='Resto C'),
    ]


@pytest.fixture
def host():
    renderHost = HeadlessRenderHost(width=1280, height=720, fov=60.0, pickRadius=20.0)
    renderHost.setView(OVERHEAD_VIEW)
    yield renderHost
    renderHost.destroy()
