"""
GeoJSON loader tests

Tests:
1. Structure validation
2. Point-only conversion, altitude rules, type normalization
3. Local file and HTTP sources, failures raised as PoiLoadError
"""

from pathlib import Path

import orjson
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from cairn.core.errors import PoiLoadError
from cairn.core.geojsonLoader import SAMPLE_POIS, GeoJsonLoader
from cairn.core.models import PoiType


DATA_FILE = Path(__file__).resolve().parent.parent / 'data' / 'pois.geojson'


def feature(geometry, **properties):
    return {'type': 'Feature', 'geometry': geometry, 'properties': properties}


def point(lon, lat, *alt):
    return {'type': 'Point', 'coordinates': [lon, lat, *alt]}


COLLECTION = {
    'type': 'FeatureCollection',
    'features': [
        feature(point(6.6347, 45.4164, 1850), id='station', name='Courchevel', type='ski_station'),
        feature(point(6.6189, 45.4283), id='chalet', name='Chalet', type='chalet', altitude=1750),
        feature(point(6.60, 45.40, 1200), id='override', name='Override', type='viewpoint', altitude=1300),
        feature(point(6.61, 45.41), id='plain', name='Plain', type='restaurant'),
        feature(point(6.62, 45.42), id='odd', name='Odd', type='altiport'),
        feature({'type': 'LineString', 'coordinates': [[6.6, 45.4], [6.7, 45.5]]}, id='route', name='Route'),
    ],
}


@pytest.fixture
def loader():
    return GeoJsonLoader(timeout=5.0)


@pytest_asyncio.fixture
async def geojsonServer():
    async def pois(request):
        return web.Response(body=orjson.dumps(COLLECTION), content_type='application/geo+json')

    app = web.Application()
    app.router.add_get('/pois.geojson', pois)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


class TestValidation:

    @pytest.mark.parametrize('data', [
        [],
        {'type': 'Feature'},
        {'type': 'FeatureCollection'},
        {'type': 'FeatureCollection', 'features': {}},
    ])
    def test_invalid_structure(self, data):
        with pytest.raises(PoiLoadError, match='Invalid GeoJSON structure'):
            GeoJsonLoader.validateGeoJSON(data)

    def test_empty_collection_is_valid(self, loader):
        GeoJsonLoader.validateGeoJSON({'type': 'FeatureCollection', 'features': []})
        assert loader.convertToPOIs({'type': 'FeatureCollection', 'features': []}) == []


class TestConversion:

    def test_only_points_become_pois(self, loader):
        pois = loader.convertToPOIs(COLLECTION)
        assert [p.id for p in pois] == ['station', 'chalet', 'override', 'plain', 'odd']

    def test_altitude_rules(self, loader):
        pois = {p.id: p for p in loader.convertToPOIs(COLLECTION)}
        assert pois['station'].coordinates.alt == 1850.0
        assert pois['chalet'].coordinates.alt == 1750.0
        assert pois['override'].coordinates.alt == 1300.0
        assert pois['plain'].coordinates.alt == 0.0

    def test_lon_lat_order(self, loader):
        station = loader.convertToPOIs(COLLECTION)[0]
        assert station.coordinates.lat == 45.4164
        assert station.coordinates.lon == 6.6347

    def test_unknown_type_maps_to_other(self, loader):
        pois = {p.id: p for p in loader.convertToPOIs(COLLECTION)}
        assert pois['odd'].type is PoiType.OTHER
        assert pois['station'].type is PoiType.SKI_STATION

    def test_properties_kept_as_metadata(self, loader):
        chalet = loader.convertToPOIs(COLLECTION)[1]
        assert chalet.metadata['altitude'] == 1750

    def test_malformed_feature_skipped(self, loader):
        data = {'type': 'FeatureCollection', 'features': [
            feature(point(6.6, 45.4), name='No id'),
            feature({'type': 'Point', 'coordinates': [6.6]}, id='short', name='Short'),
            feature(point(6.6, 45.4), id='ok', name='Ok'),
        ]}
        assert [p.id for p in loader.convertToPOIs(data)] == ['ok']

    def test_sample_collection(self):
        assert len(SAMPLE_POIS) == 5
        assert len({p.id for p in SAMPLE_POIS}) == 5


class TestSources:

    @pytest.mark.asyncio
    async def test_bundled_data_file(self, loader):
        pois = await loader.loadPOIs(str(DATA_FILE))
        assert len(pois) == 5
        assert {p.type for p in pois} == set(PoiType)

    @pytest.mark.asyncio
    async def test_local_file(self, loader, tmp_path):
        path = tmp_path / 'pois.geojson'
        path.write_bytes(orjson.dumps(COLLECTION))
        assert len(await loader.loadPOIs(str(path))) == 5

    @pytest.mark.asyncio
    async def test_missing_file(self, loader, tmp_path):
        with pytest.raises(PoiLoadError):
            await loader.loadGeoJSON(str(tmp_path / 'missing.geojson'))

    @pytest.mark.asyncio
    async def test_invalid_json(self, loader, tmp_path):
        path = tmp_path / 'broken.geojson'
        path.write_text('{"type": "FeatureCollection", ', encoding='utf-8')
        with pytest.raises(PoiLoadError):
            await loader.loadGeoJSON(str(path))

    @pytest.mark.asyncio
    async def test_http_source(self, loader, geojsonServer):
        pois = await loader.loadPOIs(str(geojsonServer.make_url('/pois.geojson')))
        assert len(pois) == 5

    @pytest.mark.asyncio
    async def test_http_error_status(self, loader, geojsonServer):
        with pytest.raises(PoiLoadError, match='Not Found'):
            await loader.loadGeoJSON(str(geojsonServer.make_url('/missing.geojson')))
