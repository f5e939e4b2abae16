"""
Cairn domain model

POI records are produced by the loader and handed to the core as an immutable
ordered sequence. The core never mutates a POI; a new collection replaces the
old one wholesale.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class PoiType(str, Enum):
    """Closed POI category set"""
    CHALET = "chalet"
    SKI_STATION = "ski_station"
    VIEWPOINT = "viewpoint"
    RESTAURANT = "restaurant"
    OTHER = "other"

    @classmethod
    def normalize(cls, value: Any) -> 'PoiType':
        """Unrecognized categories become OTHER"""
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float
    alt: float = 0.0


@dataclass(frozen=True)
class Poi:
    """
    Point of interest.

    Identity is `id`, unique within the active collection. `metadata` is frozen
    into a read-only mapping so records can be shared safely between components.
    Equality and hashing use identity attributes only (metadata excluded).
    """
    id: str
    name: str
    type: PoiType
    coordinates: Coordinates
    description: Optional[str] = None
    photo: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = field(default=None, compare=False)

    def __post_init__(self):
        if not isinstance(self.type, PoiType):
            object.__setattr__(self, 'type', PoiType.normalize(self.type))
        if self.metadata is not None and not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))

    def toDict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'coordinates': {'lat': self.coordinates.lat, 'lon': self.coordinates.lon, 'alt': self.coordinates.alt},
        }
        if self.description is not None:
            result['description'] = self.description
        if self.photo is not None:
            result['photo'] = self.photo
        if self.metadata is not None:
            result['metadata'] = dict(self.metadata)
        return result

    @classmethod
    def fromDict(cls, payload: Dict[str, Any]) -> 'Poi':
        """Build a POI from the record format. Raises KeyError/ValueError on malformed input"""
        coords = payload['coordinates']
        return cls(
            id=str(payload['id']),
            name=str(payload['name']),
            type=PoiType.normalize(payload.get('type')),
            coordinates=Coordinates(lat=float(coords['lat']), lon=float(coords['lon']),
                                    alt=float(coords.get('alt', 0.0) or 0.0)),
            description=payload.get('description'),
            photo=payload.get('photo'),
            metadata=payload.get('metadata'),
        )


# Camera destinations

@dataclass(frozen=True)
class CameraView:
    """Camera pose: position in degrees/meters (HAE), orientation in degrees"""
    lon: float
    lat: float
    height: float
    heading: float = 0.0
    pitch: float = -90.0
    roll: float = 0.0

    def toDict(self) -> Dict[str, float]:
        return {'lon': self.lon, 'lat': self.lat, 'height': self.height,
                'heading': self.heading, 'pitch': self.pitch, 'roll': self.roll}

    @classmethod
    def fromDict(cls, payload: Dict[str, Any]) -> 'CameraView':
        return cls(lon=float(payload['lon']), lat=float(payload['lat']), height=float(payload['height']),
                   heading=float(payload.get('heading', 0.0)), pitch=float(payload.get('pitch', -90.0)),
                   roll=float(payload.get('roll', 0.0)))


@dataclass(frozen=True)
class ScreenPosition:
    """Canvas pixel coordinates, origin top-left"""
    x: float
    y: float
