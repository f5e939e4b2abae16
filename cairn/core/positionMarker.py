"""
Position Marker Controller

Owns the single 'user-position' entity. The marker exists only while tracking
is active and at least one sample arrived; later samples move it in place.
The camera flies to the user once, when the marker is created.
"""

import math
from dataclasses import dataclass
from typing import Optional

from cairn.core.errors import RenderHostError, RenderHostUnavailable
from cairn.core.models import CameraView, Coordinates, ScreenPosition
from cairn.core.renderHost import EllipseStyle, EntitySpec, LabelStyle, NearFarScalar, PointStyle, RenderHost
from cairn.core.viewer import SceneConsumer
from cairnkit.geolocation import PositionSample
from cairnkit.logging import getLogger


MARKER_ID = 'user-position'
MARKER_COLOR = '#3B82F6'


@dataclass
class MarkerOptions:
    maxAccuracyRadius: float = 100.0            # Display clamp for the accuracy ellipse (m)
    flyToHeight: float = 5000.0                 # Camera height for the first-fix flight (m)
    flyToDuration: float = 2.0                  # Seconds
    flyToMaxAccuracy: Optional[float] = None    # Skip the first-fix flight above this accuracy (m); None never skips
    label: str = '📍 Vous êtes ici'


class PositionMarkerController(SceneConsumer):

    def __init__(self, options: Optional[MarkerOptions] = None):
        self.options = options or MarkerOptions()
        self.log = getLogger()
        self.host: Optional[RenderHost] = None
        self.markerId: Optional[str] = None
        self.lastSample: Optional[PositionSample] = None
        self.flightInProgress = False

    @property
    def hasMarker(self) -> bool:
        return self.markerId is not None

    def clampRadius(self, accuracy: float) -> float:
        accuracy = float(accuracy)
        if not math.isfinite(accuracy) or accuracy < 0:
            return self.options.maxAccuracyRadius
        return min(accuracy, self.options.maxAccuracyRadius)

    # Scene consumer
    def attach(self, host: RenderHost) -> None:
        if host is self.host:
            return
        if self.host is not None:
            self.detach()
        self.host = host

    def detach(self) -> None:
        self._removeMarker()
        self.host = None

    # Samples
    def onSample(self, sample: PositionSample) -> None:
        self.lastSample = sample
        host = self.host
        if host is None:
            return

        position = Coordinates(lat=sample.lat, lon=sample.lon, alt=sample.altitude or 0.0)
        radius = self.clampRadius(sample.accuracy)
        try:
            if self.markerId is None or not host.hasEntity(self.markerId):
                self.markerId = host.addEntity(self._buildMarker(position, radius))
                self.log.info("Position marker created", lat=sample.lat, lon=sample.lon, accuracy=sample.accuracy)
                self._flyToFirstFix(sample)
            else:
                host.updateEntity(self.markerId, position=position, ellipseRadius=radius)
        except RenderHostUnavailable:
            self.log.warning("Render host unavailable, sample not displayed")
            self.markerId = None
            self.host = None
        except RenderHostError as e:
            self.log.error(f"Position marker update failed: {e}")

    def onTrackingStopped(self) -> None:
        self.lastSample = None
        self._removeMarker()

    def _flyToFirstFix(self, sample: PositionSample) -> None:
        maxAccuracy = self.options.flyToMaxAccuracy
        if maxAccuracy is not None and sample.accuracy > maxAccuracy:
            self.log.info("First fix too coarse for camera flight", accuracy=sample.accuracy, limit=maxAccuracy)
            return

        destination = CameraView(lon=sample.lon, lat=sample.lat, height=self.options.flyToHeight)
        self.flightInProgress = True
        self.host.flyTo(destination, self.options.flyToDuration, complete=self._flightEnded, cancel=self._flightEnded)

    def _flightEnded(self) -> None:
        self.flightInProgress = False

    def _removeMarker(self) -> None:
        markerId, self.markerId = self.markerId, None
        host = self.host
        if markerId is None or host is None or host.destroyed:
            return
        host.removeEntity(markerId)
        self.log.info("Position marker removed")

    def _buildMarker(self, position: Coordinates, radius: float) -> EntitySpec:
        return EntitySpec(
            id=MARKER_ID,
            name='Ma Position',
            position=position,
            point=PointStyle(pixelSize=18.0, color=MARKER_COLOR, outlineColor='#FFFFFF', outlineWidth=4.0),
            ellipse=EllipseStyle(semiMajorAxis=radius, semiMinorAxis=radius,
                                 material=MARKER_COLOR + '26', outlineColor=MARKER_COLOR + '66'),
            label=LabelStyle(text=self.options.label, font='bold 15px sans-serif', fillColor='#FFFFFF',
                             outlineColor=MARKER_COLOR, outlineWidth=3.0, pixelOffset=ScreenPosition(0.0, -30.0),
                             scaleByDistance=NearFarScalar(1000.0, 1.2, 50000.0, 0.8)),
            properties={'kind': 'userPosition'},
        )
