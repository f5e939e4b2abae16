"""
POI Entity Reconciler

Keeps the rendered POI entities in a bijection with the latest POI sequence.
Every setPOIs() is a full replace: all owned entities are removed, then one
entity per POI is created in input order. The pick lookup table is swapped
only once the new entity set is complete.

One pick handler per host instance, installed on attach and removed on
releaseInput/detach, never per setPOIs().
"""

from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import quote

from cairn.core.errors import RenderHostUnavailable
from cairn.core.models import Poi, PoiType, ScreenPosition
from cairn.core.renderHost import (
    BillboardStyle, EntitySpec, LabelStyle, NearFarScalar, PickResult, RenderHost
)
from cairn.core.viewer import SceneConsumer
from cairnkit.logging import getLogger


ENTITY_PREFIX = 'poi/'

PIN_COLORS: Mapping[PoiType, str] = MappingProxyType({
    PoiType.CHALET: '#8B4513',
    PoiType.SKI_STATION: '#0066CC',
    PoiType.VIEWPOINT: '#228B22',
    PoiType.RESTAURANT: '#FF6347',
    PoiType.OTHER: '#808080',
})

BILLBOARD_SCALE = 2.0
BILLBOARD_DISTANCE_SCALE = NearFarScalar(1000.0, 2.5, 50000.0, 1.0)
LABEL_DISTANCE_SCALE = NearFarScalar(1000.0, 1.2, 50000.0, 0.8)


def pinIcon(color: str) -> str:
    """40px map pin (disc over a point) as an SVG data URL"""
    svg = ('<svg xmlns="http://www.w3.org/2000/svg" width="40" height="40">'
           f'<circle cx="20" cy="13.33" r="10" fill="{color}" stroke="#FFFFFF" stroke-width="2"/>'
           f'<path d="M20 23.33 L15 35 L25 35 Z" fill="{color}" stroke="#FFFFFF" stroke-width="2"/>'
           '</svg>')
    return 'data:image/svg+xml;utf8,' + quote(svg)


def entityIdFor(poiId: str) -> str:
    return ENTITY_PREFIX + poiId


def buildPoiEntity(poi: Poi) -> EntitySpec:
    return EntitySpec(
        id=entityIdFor(poi.id),
        name=poi.name,
        position=poi.coordinates,
        billboard=BillboardStyle(image=pinIcon(PIN_COLORS[poi.type]), scale=BILLBOARD_SCALE,
                                 scaleByDistance=BILLBOARD_DISTANCE_SCALE),
        label=LabelStyle(text=poi.name, font='16px sans-serif', fillColor='#FFFFFF', outlineColor='#000000',
                         outlineWidth=2.0, pixelOffset=ScreenPosition(0.0, -50.0),
                         scaleByDistance=LABEL_DISTANCE_SCALE),
        properties={'poiId': poi.id, 'poiType': poi.type.value},
    )


class PoiEntityReconciler(SceneConsumer):

    def __init__(self, onPoiClick: Optional[Callable[[Poi], None]] = None):
        self.onPoiClick = onPoiClick
        self.log = getLogger()
        self.host: Optional[RenderHost] = None
        self.pois: Tuple[Poi, ...] = ()
        self._owned: Dict[str, str] = {}          # entity id -> poi id
        self._lookup: Dict[str, Poi] = {}         # poi id -> record, read by the pick handler
        self._pickToken: Optional[object] = None
        self.duplicatesSkipped = 0

    @property
    def entityCount(self) -> int:
        return len(self._owned)

    def ownedEntityIds(self):
        return list(self._owned)

    def getPoi(self, poiId: str) -> Optional[Poi]:
        return self._lookup.get(poiId)

    def setOnPoiClick(self, callback: Optional[Callable[[Poi], None]]) -> None:
        """Swap the click callback without touching the installed pick handler"""
        self.onPoiClick = callback

    # Scene consumer
    def attach(self, host: RenderHost) -> None:
        if host is self.host:
            return
        if self.host is not None:
            self.detach()

        self.host = host
        try:
            self._pickToken = host.installPickHandler(self._handlePick)
            self._reconcile()
        except RenderHostUnavailable:
            self.log.warning("Render host went away during attach")
            self._forgetHost()

    def releaseInput(self) -> None:
        token, self._pickToken = self._pickToken, None
        if token is not None and self.host is not None:
            self.host.removePickHandler(token)

    def detach(self) -> None:
        self.releaseInput()
        host = self.host
        if host is not None and not host.destroyed:
            with host.batchedChanges():
                for entityId in list(self._owned):
                    host.removeEntity(entityId)
        self._forgetHost()

    # Reconciliation
    def setPOIs(self, pois: Iterable[Poi]) -> None:
        self.pois = tuple(pois)
        if self.host is None:
            self.log.debug("POIs stored until a render host is ready", count=len(self.pois))
            return
        try:
            self._reconcile()
        except RenderHostUnavailable:
            self.log.warning("Render host unavailable, POIs kept for the next host", count=len(self.pois))
            self._forgetHost()

    def _reconcile(self) -> None:
        host = self.host
        host.ensureAlive()

        with host.batchedChanges():
            for entityId in list(self._owned):
                host.removeEntity(entityId)
                del self._owned[entityId]

            owned: Dict[str, str] = {}
            lookup: Dict[str, Poi] = {}
            for poi in self.pois:
                if poi.id in lookup:
                    self.duplicatesSkipped += 1
                    self.log.warning("Duplicate POI id skipped", poiId=poi.id, poiName=poi.name)
                    continue
                entityId = host.addEntity(buildPoiEntity(poi))
                owned[entityId] = poi.id
                lookup[poi.id] = poi

        self._owned = owned
        self._lookup = lookup
        self.log.info("POI entities reconciled", count=len(owned))

    def _handlePick(self, position: ScreenPosition, result: Optional[PickResult]) -> None:
        if result is None:
            return
        poiId = result.properties.get('poiId')
        if poiId is None or result.entityId not in self._owned:
            return
        poi = self._lookup.get(poiId)
        if poi is None or self.onPoiClick is None:
            return

        self.log.debug("POI picked", poiId=poi.id, x=position.x, y=position.y)
        try:
            self.onPoiClick(poi)
        except Exception as e:
            self.log.error(f"POI click callback failed: {e}", exc_info=True)

    def _forgetHost(self) -> None:
        self.host = None
        self._pickToken = None
        self._owned = {}
        self._lookup = {}
