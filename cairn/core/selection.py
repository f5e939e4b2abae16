"""
Selection / Popup State

select() opens the detail popup on a POI immediately. requestClose() hides the
popup immediately and clears the selection after `clearDelay`, so a closing
panel can still render its POI. The deferred clear is tied to the POI it was
scheduled for: a select() in between cancels it.
"""

import asyncio
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from cairn.core.models import Poi, PoiType
from cairnkit.logging import getLogger


MAP_SEARCH_URL = 'https://www.google.com/maps/search/?api=1&query={lat},{lon}'

TYPE_LABELS: Mapping[PoiType, str] = MappingProxyType({
    PoiType.CHALET: 'Chalet',
    PoiType.SKI_STATION: 'Station de Ski',
    PoiType.VIEWPOINT: 'Point de Vue',
    PoiType.RESTAURANT: 'Restaurant',
    PoiType.OTHER: 'Autre',
})

TYPE_COLORS: Mapping[PoiType, str] = MappingProxyType({
    PoiType.CHALET: '#f59e0b',
    PoiType.SKI_STATION: '#3b82f6',
    PoiType.VIEWPOINT: '#10b981',
    PoiType.RESTAURANT: '#ef4444',
    PoiType.OTHER: '#6b7280',
})


def _formatNumber(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith('.0') else text


def buildMapSearchUrl(poi: Poi) -> str:
    return MAP_SEARCH_URL.format(lat=_formatNumber(poi.coordinates.lat), lon=_formatNumber(poi.coordinates.lon))


@dataclass(frozen=True)
class PoiDetailView:
    """What the detail panel shows for one POI"""
    poiId: str
    name: str
    type: str
    typeLabel: str
    typeColor: str
    description: Optional[str]
    photo: Optional[str]
    latitude: str
    longitude: str
    altitude: str
    mapUrl: str

    @classmethod
    def fromPoi(cls, poi: Poi) -> 'PoiDetailView':
        return cls(
            poiId=poi.id,
            name=poi.name,
            type=poi.type.value,
            typeLabel=TYPE_LABELS[poi.type],
            typeColor=TYPE_COLORS[poi.type],
            description=poi.description,
            photo=poi.photo,
            latitude=f"{poi.coordinates.lat:.6f}°",
            longitude=f"{poi.coordinates.lon:.6f}°",
            altitude=f"{poi.coordinates.alt:.0f} m",
            mapUrl=buildMapSearchUrl(poi),
        )

    def toDict(self) -> Dict[str, Any]:
        return asdict(self)


class _PendingClear:
    def __init__(self, poi: Poi, handle: asyncio.TimerHandle):
        self.poi = poi
        self.handle = handle


class SelectionState:

    def __init__(self, clearDelay: float = 0.3):
        self.clearDelay = float(clearDelay)
        self.log = getLogger()
        self.selectedPoi: Optional[Poi] = None
        self.popupOpen = False
        self._pending: Optional[_PendingClear] = None
        self._listeners: List[Callable[['SelectionState'], None]] = []

    @property
    def hasPendingClear(self) -> bool:
        return self._pending is not None

    def addListener(self, listener: Callable[['SelectionState'], None]) -> None:
        self._listeners.append(listener)

    def select(self, poi: Poi) -> None:
        self._cancelPending()
        self.selectedPoi = poi
        self.popupOpen = True
        self.log.debug("POI selected", poiId=poi.id)
        self._notify()

    def requestClose(self) -> None:
        if not self.popupOpen:
            return
        self.popupOpen = False
        self._cancelPending()

        poi = self.selectedPoi
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if poi is None or loop is None or self.clearDelay <= 0:
            self.selectedPoi = None
        else:
            self._pending = _PendingClear(poi, loop.call_later(self.clearDelay, self._clearIfCurrent, poi))
        self._notify()

    def detailView(self) -> Optional[PoiDetailView]:
        if self.selectedPoi is None:
            return None
        return PoiDetailView.fromPoi(self.selectedPoi)

    def snapshot(self) -> Dict[str, Any]:
        return {'selectedPoi': self.selectedPoi.toDict() if self.selectedPoi is not None else None,
                'popupOpen': self.popupOpen}

    def dispose(self) -> None:
        self._cancelPending()

    def _clearIfCurrent(self, poi: Poi) -> None:
        pending, self._pending = self._pending, None
        if pending is None or pending.poi is not poi or self.selectedPoi is not poi or self.popupOpen:
            return
        self.selectedPoi = None
        self._notify()

    def _cancelPending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is not None:
            pending.handle.cancel()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
