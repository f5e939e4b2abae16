"""
CairnApp - component wiring

    ViewerLifecycle ──publishes host──> SceneBroadcaster, PoiEntityReconciler, PositionMarkerController
    PoiEntityReconciler ──pick──> SelectionState
    TrackingController ──> GeolocationTracker ──samples──> PositionMarkerController

Owns startup order (broadcaster queue before the host so clients see the
initial scene) and shutdown order (tracking, selection timer, host, clients).
"""

from typing import Any, Dict, Optional, Tuple

from cairn.core.errors import PoiLoadError
from cairn.core.geojsonLoader import SAMPLE_POIS, GeoJsonLoader
from cairn.core.headlessHost import HeadlessRenderHost
from cairn.core.models import CameraView, Poi, ScreenPosition
from cairn.core.poiLayer import PoiEntityReconciler
from cairn.core.positionMarker import MarkerOptions, PositionMarkerController
from cairn.core.renderHost import PickResult
from cairn.core.selection import SelectionState
from cairn.core.tracking import TrackingController
from cairn.core.viewer import ViewerLifecycle, ViewerOptions
from cairn.server.sceneBroadcast import SceneBroadcaster
from cairnkit.geolocation import (
    GeolocationTracker, NmeaPositionSource, PositionSample, PositionSource, PushPositionSource,
    ReplayPositionSource, TrackingOptions, errorFromCode
)
from cairnkit.logging import getLogger


def buildPositionSource(config: Dict[str, Any]) -> Optional[PositionSource]:
    """Position source from the 'geolocation' config section. 'none' means unsupported"""
    kind = config.get('source') or 'none'
    if kind == 'none':
        return None
    if kind == 'push':
        return PushPositionSource()
    if kind == 'nmea':
        return NmeaPositionSource(**config.get('nmea', {}))
    if kind == 'replay':
        replay = config.get('replay', {})
        return ReplayPositionSource(csvPath=replay.get('csvPath'), interval=replay.get('interval', 1.0),
                                    repeat=replay.get('repeat', False))
    raise ValueError(f"Unknown position source: {kind}")


class CairnApp:

    def __init__(self, config: Dict[str, Any], source: Optional[PositionSource] = None):
        self.config = config
        self.log = getLogger()
        viewerConfig = config['viewer']
        geoConfig = config['geolocation']

        self.broadcaster = SceneBroadcaster(**config.get('broadcast', {}))
        self.selection = SelectionState(clearDelay=config['selection']['clearDelay'])
        self.poiLayer = PoiEntityReconciler(onPoiClick=self.selection.select)
        self.marker = PositionMarkerController(MarkerOptions(**config['marker']))
        self.loader = GeoJsonLoader(timeout=config['pois'].get('timeout', 10.0))

        self.source = source if source is not None else buildPositionSource(geoConfig)
        self.tracker = GeolocationTracker(self.source, TrackingOptions(
            highAccuracy=geoConfig['highAccuracy'], timeout=geoConfig['timeout'], maximumAge=geoConfig['maximumAge']))
        self.tracking = TrackingController(self.tracker, self.marker)

        self.viewer = ViewerLifecycle(self.createHost, ViewerOptions(
            homeView=CameraView.fromDict(viewerConfig['homeView']),
            homeFlightDuration=viewerConfig['homeFlightDuration'],
            moveAmount=viewerConfig['moveAmount'],
            twistAmount=viewerConfig['twistAmount']))
        for consumer in (self.broadcaster, self.poiLayer, self.marker):
            self.viewer.register(consumer)

        self.usingSamplePois = False
        self.tracking.addListener(lambda state: self.broadcaster.publish('tracking', tracking=state.toDict()))
        self.selection.addListener(lambda selection: self.broadcaster.publish('selection', selection=selection.snapshot()))
        self.broadcaster.addSnapshotProvider('tracking', lambda: self.tracking.state.toDict())
        self.broadcaster.addSnapshotProvider('selection', self.selection.snapshot)

    def createHost(self) -> HeadlessRenderHost:
        viewerConfig = self.config['viewer']
        return HeadlessRenderHost(width=viewerConfig['width'], height=viewerConfig['height'],
                                  fov=viewerConfig['fov'], pickRadius=viewerConfig['pickRadius'])

    async def start(self) -> None:
        await self.broadcaster.start()
        self.viewer.start()
        await self.reloadPOIs()
        self.log.info("Cairn started", source=self.source.getKind() if self.source else 'none')

    async def stop(self) -> None:
        self.tracking.teardown()
        self.selection.dispose()
        self.viewer.stop()
        await self.broadcaster.stop()
        self.log.info("Cairn stopped")

    async def reloadPOIs(self, source: Optional[str] = None) -> Tuple[int, bool]:
        """Load POIs and hand them to the reconciler. Returns (count, usedSamples)"""
        poisConfig = self.config['pois']
        source = source or poisConfig['source']
        try:
            pois = await self.loader.loadPOIs(source)
            self.usingSamplePois = False
        except PoiLoadError as e:
            if not poisConfig.get('fallbackToSamples', True):
                raise
            self.log.warning(f"Failed to load POIs, using sample data: {e}", source=source)
            pois = list(SAMPLE_POIS)
            self.usingSamplePois = True

        self.poiLayer.setPOIs(pois)
        self.broadcaster.publish('pois', count=len(self.poiLayer.pois))
        return len(pois), self.usingSamplePois

    def getPoi(self, poiId: str) -> Optional[Poi]:
        for poi in self.poiLayer.pois:
            if poi.id == poiId:
                return poi
        return None

    def click(self, x: float, y: float) -> Optional[PickResult]:
        """Left click on the canvas. None when nothing was hit or no host is ready"""
        if not self.viewer.isReady:
            return None
        return self.viewer.host.dispatchClick(ScreenPosition(float(x), float(y)))

    def pushPosition(self, payload: Dict[str, Any]) -> None:
        """
        Relay a client geolocation callback.

        {"coords": {...}} or {"lat": .., "lon": .., "accuracy": ..} for a fix,
        {"error": {"code": 1|2|3, "message": "..."}} for a failure.
        Raises ValueError when the payload is malformed or the source does not accept relayed fixes.
        """
        if not isinstance(self.source, PushPositionSource):
            raise ValueError("Position source does not accept relayed fixes")

        error = payload.get('error')
        if error is not None:
            if not isinstance(error, dict) or 'code' not in error:
                raise ValueError("error must be an object with a code")
            self.source.fail(errorFromCode(int(error['code']), error.get('message')))
            return
        self.source.push(PositionSample.fromDict(payload))

    def metrics(self) -> Dict[str, Any]:
        return {
            'pois': len(self.poiLayer.pois),
            'poiEntities': self.poiLayer.entityCount,
            'usingSamplePois': self.usingSamplePois,
            'tracking': self.tracking.state.status.value,
            'hostGeneration': self.viewer.generation,
            'broadcast': self.broadcaster.getMetrics(),
        }
