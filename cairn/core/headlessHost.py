"""
Headless Render Host

In-process scene engine: keeps entities in memory, projects them through a
pinhole camera over the WGS-84 ellipsoid and resolves screen picks to the
frontmost entity. Used by the service (scene changes are mirrored to browser
clients through scene listeners) and by the tests.
"""

import asyncio
import math
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from cairn.core.errors import RenderHostError
from cairn.core.models import CameraView, Coordinates, ScreenPosition
from cairn.core.renderHost import EntitySpec, PickCallback, PickResult, RenderHost
from cairnkit.globe import Globe
from cairnkit.logging import getLogger


# Camera frame directions in (right, up, forward) components
MOVE_DIRECTIONS = {
    'forward': (0.0, 0.0, 1.0),
    'backward': (0.0, 0.0, -1.0),
    'left': (-1.0, 0.0, 0.0),
    'right': (1.0, 0.0, 0.0),
    'up': (0.0, 1.0, 0.0),
    'down': (0.0, -1.0, 0.0),
}


class _Flight:
    """A camera flight in progress"""

    def __init__(self, view: CameraView, handle: Optional[asyncio.TimerHandle],
                 complete: Optional[Callable[[], None]], cancel: Optional[Callable[[], None]]):
        self.view = view
        self.handle = handle
        self.complete = complete
        self.cancel = cancel


class HeadlessRenderHost(RenderHost):

    def __init__(self, width: int = 1280, height: int = 720, fov: float = 60.0,
                 pickRadius: float = 20.0, nearPlane: float = 1.0):
        super().__init__()
        self.width, self.height = int(width), int(height)
        self.fov = float(fov)
        self.pickRadius = float(pickRadius)
        self.nearPlane = float(nearPlane)
        self.globe = Globe()
        self.log = getLogger()

        self.entities: Dict[str, EntitySpec] = {}
        self._ecef: Dict[str, np.ndarray] = {}
        self.view = CameraView(lon=0.0, lat=0.0, height=10_000_000.0)
        self._pickHandler: Optional[Tuple[object, PickCallback]] = None
        self._flight: Optional[_Flight] = None
        self.flightCount = 0

    # Entities
    def addEntity(self, spec: EntitySpec) -> str:
        self.ensureAlive()
        if spec.id in self.entities:
            raise RenderHostError(f"Entity already exists: {spec.id}")
        self.entities[spec.id] = spec
        self._ecef[spec.id] = self.globe.llaToEcef(spec.position.lat, spec.position.lon, spec.position.alt)
        self.emit('entityAdded', {'entity': spec.toDict()})
        return spec.id

    def updateEntity(self, entityId: str, position: Optional[Coordinates] = None,
                     ellipseRadius: Optional[float] = None) -> None:
        self.ensureAlive()
        spec = self.entities.get(entityId)
        if spec is None:
            raise RenderHostError(f"Unknown entity: {entityId}")

        if position is not None:
            spec = spec.withPosition(position)
            self._ecef[entityId] = self.globe.llaToEcef(position.lat, position.lon, position.alt)
        if ellipseRadius is not None:
            spec = spec.withEllipseRadius(ellipseRadius)
        self.entities[entityId] = spec
        self.emit('entityUpdated', {'entity': spec.toDict()})

    def removeEntity(self, entityId: str) -> bool:
        self.ensureAlive()
        if self.entities.pop(entityId, None) is None:
            return False
        self._ecef.pop(entityId, None)
        self.emit('entityRemoved', {'entityId': entityId})
        return True

    def getEntity(self, entityId: str) -> Optional[EntitySpec]:
        return self.entities.get(entityId)

    def entityIds(self) -> List[str]:
        return list(self.entities)

    # Input
    def installPickHandler(self, callback: PickCallback) -> object:
        self.ensureAlive()
        if self._pickHandler is not None:
            raise RenderHostError("A pick handler is already installed on this scene")
        token = object()
        self._pickHandler = (token, callback)
        self.emit('pickHandlerInstalled', {})
        return token

    def removePickHandler(self, token: object) -> bool:
        if self._pickHandler is None or self._pickHandler[0] is not token:
            return False
        self._pickHandler = None
        if not self.destroyed:
            self.emit('pickHandlerRemoved', {})
        return True

    @property
    def hasPickHandler(self) -> bool:
        return self._pickHandler is not None

    def pick(self, position: ScreenPosition) -> Optional[PickResult]:
        self.ensureAlive()
        best: Optional[PickResult] = None
        for entityId, spec in self.entities.items():
            projected = self._project(self._ecef[entityId])
            if projected is None:
                continue
            screen, depth = projected
            radius = self._hitRadius(spec, depth)
            if math.hypot(screen.x - position.x, screen.y - position.y) > radius:
                continue
            if best is None or depth < best.distance:
                best = PickResult(entityId=entityId, properties=dict(spec.properties), distance=depth)
        return best

    def dispatchClick(self, position: ScreenPosition) -> Optional[PickResult]:
        self.ensureAlive()
        result = self.pick(position)
        if self._pickHandler is not None:
            self._pickHandler[1](position, result)
        return result

    def projectToScreen(self, entityId: str) -> Optional[ScreenPosition]:
        """Screen position of an entity anchor, or None when it is off screen or behind the globe"""
        ecef = self._ecef.get(entityId)
        if ecef is None:
            return None
        projected = self._project(ecef)
        return projected[0] if projected is not None else None

    # Camera
    def getView(self) -> CameraView:
        return self.view

    def setView(self, view: CameraView) -> None:
        self.ensureAlive()
        self._cancelFlight()
        self._applyView(view)

    def flyTo(self, view: CameraView, duration: float,
              complete: Optional[Callable[[], None]] = None,
              cancel: Optional[Callable[[], None]] = None) -> None:
        self.ensureAlive()
        self._cancelFlight()
        self.flightCount += 1
        self.emit('flyTo', {'view': view.toDict(), 'duration': duration})

        loop = self._runningLoop()
        if duration <= 0 or loop is None:
            self._applyView(view)
            if complete is not None:
                complete()
            return

        flight = _Flight(view, None, complete, cancel)
        flight.handle = loop.call_later(duration, self._finishFlight, flight)
        self._flight = flight

    @property
    def isFlying(self) -> bool:
        return self._flight is not None

    def moveCamera(self, direction: str, amount: float) -> None:
        self.ensureAlive()
        if direction not in MOVE_DIRECTIONS:
            raise ValueError(f"Unknown camera direction: {direction}")
        self._cancelFlight()

        right, up, forward = self._cameraAxes()
        r, u, f = MOVE_DIRECTIONS[direction]
        offsetEnu = amount * (r * right + u * up + f * forward)

        view = self.view
        cameraEcef = self.globe.llaToEcef(view.lat, view.lon, view.height)
        moved = self.globe.enuToEcef(offsetEnu, cameraEcef, view.lat, view.lon)
        lat, lon, height = self.globe.ecefToLla(moved)
        self._applyView(CameraView(lon=lon, lat=lat, height=height,
                                   heading=view.heading, pitch=view.pitch, roll=view.roll))

    def twistCamera(self, amount: float) -> None:
        self.ensureAlive()
        self._cancelFlight()
        view = self.view
        roll = (view.roll + amount + 180.0) % 360.0 - 180.0
        self._applyView(CameraView(lon=view.lon, lat=view.lat, height=view.height,
                                   heading=view.heading, pitch=view.pitch, roll=roll))

    # Lifecycle
    def destroy(self) -> None:
        if self.destroyed:
            return
        self._cancelFlight()
        self.emit('destroyed', {'entities': len(self.entities)})
        self.destroyed = True
        self._pickHandler = None
        self.entities.clear()
        self._ecef.clear()
        self._listeners.clear()
        self.log.info("Render host destroyed")

    # Internals
    @staticmethod
    def _runningLoop() -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _applyView(self, view: CameraView) -> None:
        self.view = view
        self.emit('camera', {'view': view.toDict()})

    def _finishFlight(self, flight: _Flight) -> None:
        if self._flight is not flight:
            return
        self._flight = None
        self._applyView(flight.view)
        if flight.complete is not None:
            flight.complete()

    def _cancelFlight(self) -> None:
        flight, self._flight = self._flight, None
        if flight is None:
            return
        if flight.handle is not None:
            flight.handle.cancel()
        if flight.cancel is not None:
            flight.cancel()

    def _cameraAxes(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Right, up and forward unit vectors of the camera in its local ENU frame"""
        heading, pitch, roll = map(math.radians, (self.view.heading, self.view.pitch, self.view.roll))
        forward = np.array([math.sin(heading) * math.cos(pitch),
                            math.cos(heading) * math.cos(pitch),
                            math.sin(pitch)])
        right0 = np.array([math.cos(heading), -math.sin(heading), 0.0])
        up0 = np.cross(right0, forward)
        right = math.cos(roll) * right0 - math.sin(roll) * up0
        up = math.sin(roll) * right0 + math.cos(roll) * up0
        return right, up, forward

    def _project(self, ecef: np.ndarray) -> Optional[Tuple[ScreenPosition, float]]:
        view = self.view
        cameraEcef = self.globe.llaToEcef(view.lat, view.lon, view.height)

        # Horizon test on the sphere through the target
        normal = ecef / np.linalg.norm(ecef)
        if float(np.dot(cameraEcef - ecef, normal)) < 0.0:
            return None

        enu = self.globe.ecefToEnu(ecef, cameraEcef, view.lat, view.lon)
        right, up, forward = self._cameraAxes()
        depth = float(np.dot(enu, forward))
        if depth < self.nearPlane:
            return None

        focal = (self.width / 2.0) / math.tan(math.radians(self.fov) / 2.0)
        x = self.width / 2.0 + focal * float(np.dot(enu, right)) / depth
        y = self.height / 2.0 - focal * float(np.dot(enu, up)) / depth
        if not (0.0 <= x <= self.width and 0.0 <= y <= self.height):
            return None
        return ScreenPosition(x, y), float(np.linalg.norm(enu))

    def _hitRadius(self, spec: EntitySpec, distance: float) -> float:
        if spec.billboard is not None:
            scale = spec.billboard.scale
            if spec.billboard.scaleByDistance is not None:
                scale *= spec.billboard.scaleByDistance.evaluate(distance)
            return self.pickRadius * scale
        if spec.point is not None:
            return spec.point.pixelSize / 2.0 + spec.point.outlineWidth + 2.0
        return self.pickRadius
