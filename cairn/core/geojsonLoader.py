"""
GeoJSON POI Loader

One-shot load of a FeatureCollection from a local path or an http(s) URL,
converted to POI records. Only Point features become POIs; the third
coordinate is the altitude unless properties.altitude overrides it.
"""

from typing import Any, Dict, List, Tuple

import aiohttp
import orjson

from cairn.core.errors import PoiLoadError
from cairn.core.models import Coordinates, Poi, PoiType
from cairnkit.logging import getLogger


# Fallback collection served when the configured source cannot be loaded
SAMPLE_POIS: Tuple[Poi, ...] = (
    Poi(id='chalet-001', name='Chalet du Mont Blanc', type=PoiType.CHALET,
        coordinates=Coordinates(lat=45.8326, lon=6.8657, alt=1850.0),
        description='Chalet traditionnel avec vue panoramique sur le Mont Blanc.'),
    Poi(id='ski-station-001', name='Chamonix Mont-Blanc', type=PoiType.SKI_STATION,
        coordinates=Coordinates(lat=45.9237, lon=6.6339, alt=1035.0),
        description='Station de ski de renommée mondiale au pied du Mont Blanc.'),
    Poi(id='viewpoint-001', name='Aiguille du Midi', type=PoiType.VIEWPOINT,
        coordinates=Coordinates(lat=45.9201, lon=6.7968, alt=3842.0),
        description="Point de vue exceptionnel à 3842m d'altitude."),
    Poi(id='restaurant-001', name='Le Refuge Alpin', type=PoiType.RESTAURANT,
        coordinates=Coordinates(lat=45.9167, lon=6.6198, alt=1200.0),
        description="Restaurant d'altitude proposant une cuisine savoyarde."),
    Poi(id='chalet-002', name='Chalet Les Arolles', type=PoiType.CHALET,
        coordinates=Coordinates(lat=45.9053, lon=6.6544, alt=1650.0),
        description='Chalet moderne avec architecture traditionnelle.'),
)


class GeoJsonLoader:

    def __init__(self, timeout: float = 10.0):
        self.timeout = float(timeout)
        self.log = getLogger()

    async def loadGeoJSON(self, source: str) -> Dict[str, Any]:
        """Fetch and validate a FeatureCollection. Raises PoiLoadError"""
        try:
            if source.startswith(('http://', 'https://')):
                raw = await self._fetch(source)
            else:
                with open(source, 'rb') as f:
                    raw = f.read()
            data = orjson.loads(raw)
        except PoiLoadError:
            raise
        except (OSError, aiohttp.ClientError, orjson.JSONDecodeError) as e:
            self.log.error(f"Error loading GeoJSON: {e}", source=source)
            raise PoiLoadError(f"Failed to load GeoJSON: {e}") from e

        self.validateGeoJSON(data)
        return data

    async def loadPOIs(self, source: str) -> List[Poi]:
        return self.convertToPOIs(await self.loadGeoJSON(source))

    async def _fetch(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise PoiLoadError(f"Failed to load GeoJSON: {response.reason}")
                return await response.read()

    @staticmethod
    def validateGeoJSON(data: Any) -> None:
        if not isinstance(data, dict) or data.get('type') != 'FeatureCollection' or not isinstance(data.get('features'), list):
            raise PoiLoadError("Invalid GeoJSON structure")

    def convertToPOIs(self, geojson: Dict[str, Any]) -> List[Poi]:
        pois = []
        for index, feature in enumerate(geojson['features']):
            geometry = feature.get('geometry') or {}
            if geometry.get('type') != 'Point':
                continue

            properties = feature.get('properties') or {}
            try:
                pois.append(self._toPoi(geometry['coordinates'], properties))
            except (KeyError, IndexError, TypeError, ValueError) as e:
                self.log.warning(f"Skipping malformed feature: {e}", index=index)
        return pois

    def _toPoi(self, coordinates: List[Any], properties: Dict[str, Any]) -> Poi:
        lon, lat = float(coordinates[0]), float(coordinates[1])
        alt = float(coordinates[2]) if len(coordinates) > 2 and coordinates[2] is not None else 0.0
        if properties.get('altitude') is not None:
            alt = float(properties['altitude'])

        return Poi(
            id=str(properties['id']),
            name=str(properties['name']),
            type=self.validatePoiType(properties.get('type')),
            coordinates=Coordinates(lat=lat, lon=lon, alt=alt),
            description=properties.get('description'),
            photo=properties.get('photo'),
            metadata=properties,
        )

    @staticmethod
    def validatePoiType(value: Any) -> PoiType:
        return PoiType.normalize(value)
