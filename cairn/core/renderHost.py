"""
Render Host capability surface

The scene engine the core drives. A host owns a set of addressable entities,
a camera, and at most one pick handler. Components talk to the host only
through this surface so the engine can be swapped (headless host for the
service and tests, a remote 3D client behind the scene broadcaster).
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Optional

from cairn.core.errors import RenderHostError, RenderHostUnavailable
from cairn.core.models import CameraView, Coordinates, ScreenPosition


# Entity styling

@dataclass(frozen=True)
class NearFarScalar:
    """Linear scaling by camera distance, clamped outside [near, far]"""
    near: float
    nearValue: float
    far: float
    farValue: float

    def evaluate(self, distance: float) -> float:
        if distance <= self.near:
            return self.nearValue
        if distance >= self.far:
            return self.farValue
        t = (distance - self.near) / (self.far - self.near)
        return self.nearValue + t * (self.farValue - self.nearValue)

    def toDict(self) -> Dict[str, float]:
        return {'near': self.near, 'nearValue': self.nearValue, 'far': self.far, 'farValue': self.farValue}


@dataclass(frozen=True)
class PointStyle:
    pixelSize: float = 10.0
    color: str = '#FFFFFF'
    outlineColor: str = '#FFFFFF'
    outlineWidth: float = 0.0


@dataclass(frozen=True)
class BillboardStyle:
    image: str
    scale: float = 1.0
    scaleByDistance: Optional[NearFarScalar] = None
    verticalOrigin: str = 'bottom'


@dataclass(frozen=True)
class EllipseStyle:
    semiMajorAxis: float
    semiMinorAxis: float
    material: str = '#3B82F633'
    outlineColor: str = '#3B82F6'
    height: float = 0.0


@dataclass(frozen=True)
class LabelStyle:
    text: str
    font: str = '14px sans-serif'
    fillColor: str = '#FFFFFF'
    outlineColor: str = '#000000'
    outlineWidth: float = 2.0
    pixelOffset: ScreenPosition = ScreenPosition(0.0, 0.0)
    scaleByDistance: Optional[NearFarScalar] = None


@dataclass(frozen=True)
class EntitySpec:
    """Everything a host needs to create one renderable"""
    id: str
    position: Coordinates
    name: Optional[str] = None
    point: Optional[PointStyle] = None
    billboard: Optional[BillboardStyle] = None
    ellipse: Optional[EllipseStyle] = None
    label: Optional[LabelStyle] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    def withPosition(self, position: Coordinates) -> 'EntitySpec':
        return replace(self, position=position)

    def withEllipseRadius(self, radius: float) -> 'EntitySpec':
        if self.ellipse is None:
            return self
        return replace(self, ellipse=replace(self.ellipse, semiMajorAxis=radius, semiMinorAxis=radius))

    def toDict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'position': {'lat': self.position.lat, 'lon': self.position.lon, 'alt': self.position.alt},
            'properties': dict(self.properties),
        }
        if self.point is not None:
            result['point'] = {'pixelSize': self.point.pixelSize, 'color': self.point.color,
                               'outlineColor': self.point.outlineColor, 'outlineWidth': self.point.outlineWidth}
        if self.billboard is not None:
            result['billboard'] = {'image': self.billboard.image, 'scale': self.billboard.scale,
                                   'verticalOrigin': self.billboard.verticalOrigin,
                                   'scaleByDistance': self.billboard.scaleByDistance.toDict() if self.billboard.scaleByDistance else None}
        if self.ellipse is not None:
            result['ellipse'] = {'semiMajorAxis': self.ellipse.semiMajorAxis, 'semiMinorAxis': self.ellipse.semiMinorAxis,
                                 'material': self.ellipse.material, 'outlineColor': self.ellipse.outlineColor,
                                 'height': self.ellipse.height}
        if self.label is not None:
            result['label'] = {'text': self.label.text, 'font': self.label.font, 'fillColor': self.label.fillColor,
                               'outlineColor': self.label.outlineColor, 'outlineWidth': self.label.outlineWidth,
                               'pixelOffset': [self.label.pixelOffset.x, self.label.pixelOffset.y],
                               'scaleByDistance': self.label.scaleByDistance.toDict() if self.label.scaleByDistance else None}
        return result


@dataclass(frozen=True)
class PickResult:
    """A renderable under a screen coordinate"""
    entityId: str
    properties: Dict[str, Any]
    distance: float


PickCallback = Callable[[ScreenPosition, Optional[PickResult]], None]
SceneListener = Callable[[str, Dict[str, Any]], None]


class RenderHost(ABC):
    """
    Scene engine capability surface.

    Entity operations on a destroyed host raise RenderHostUnavailable. Exactly
    one pick handler may be installed per host; installPickHandler returns a
    token that removePickHandler accepts.
    """

    def __init__(self):
        self.destroyed = False
        self._listeners: List[SceneListener] = []
        self._suspendDepth = 0
        self._pendingEvents: List[tuple] = []

    # Entities
    @abstractmethod
    def addEntity(self, spec: EntitySpec) -> str:
        """Create a renderable. Raises RenderHostError if the id is taken"""

    @abstractmethod
    def updateEntity(self, entityId: str, position: Optional[Coordinates] = None,
                     ellipseRadius: Optional[float] = None) -> None:
        """Mutate a renderable in place"""

    @abstractmethod
    def removeEntity(self, entityId: str) -> bool:
        """Remove a renderable. Returns False when the id is unknown"""

    @abstractmethod
    def getEntity(self, entityId: str) -> Optional[EntitySpec]: ...

    @abstractmethod
    def entityIds(self) -> List[str]: ...

    def hasEntity(self, entityId: str) -> bool:
        return self.getEntity(entityId) is not None

    # Input
    @abstractmethod
    def installPickHandler(self, callback: PickCallback) -> object: ...

    @abstractmethod
    def removePickHandler(self, token: object) -> bool: ...

    @abstractmethod
    def pick(self, position: ScreenPosition) -> Optional[PickResult]:
        """Resolve a screen coordinate to the frontmost renderable, or None"""

    @abstractmethod
    def dispatchClick(self, position: ScreenPosition) -> Optional[PickResult]:
        """Deliver a left click to the installed pick handler"""

    # Camera
    @abstractmethod
    def getView(self) -> CameraView: ...

    @abstractmethod
    def setView(self, view: CameraView) -> None: ...

    @abstractmethod
    def flyTo(self, view: CameraView, duration: float,
              complete: Optional[Callable[[], None]] = None,
              cancel: Optional[Callable[[], None]] = None) -> None:
        """Fire-and-forget camera move; a new flight cancels the one in progress"""

    @abstractmethod
    def moveCamera(self, direction: str, amount: float) -> None:
        """Translate the camera: forward, backward, left, right, up, down (meters)"""

    @abstractmethod
    def twistCamera(self, amount: float) -> None:
        """Roll the camera (degrees, positive clockwise)"""

    # Lifecycle
    @abstractmethod
    def destroy(self) -> None: ...

    def ensureAlive(self) -> None:
        if self.destroyed:
            raise RenderHostUnavailable("Render host destroyed")

    # Scene listeners
    def addListener(self, listener: SceneListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def removeListener(self, listener: SceneListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._suspendDepth > 0:
            self._pendingEvents.append((event, payload))
            return
        for listener in list(self._listeners):
            listener(event, payload)

    @contextmanager
    def batchedChanges(self) -> Iterator['RenderHost']:
        """Hold scene events until the outermost batch exits, then flush them as one batch event"""
        self._suspendDepth += 1
        try:
            yield self
        finally:
            self._suspendDepth -= 1
            if self._suspendDepth == 0 and self._pendingEvents:
                events, self._pendingEvents = self._pendingEvents, []
                self.emit('batch', {'events': [{'event': e, **p} for e, p in events]})


__all__ = [
    'NearFarScalar', 'PointStyle', 'BillboardStyle', 'EllipseStyle', 'LabelStyle',
    'EntitySpec', 'PickResult', 'PickCallback', 'SceneListener', 'RenderHost',
    'RenderHostError', 'RenderHostUnavailable',
]
