"""
Tracking state machine

    Idle   --toggle-->          Active
    Active --toggle/teardown--> Idle
    Active --source failure-->  Error(message)
    Error  --toggle-->          Active   (no automatic retry)

Error holds no subscription; it only carries the message shown to the user
until the next toggle clears it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from cairn.core.positionMarker import PositionMarkerController
from cairnkit.geolocation import GeolocationTracker, PositionError, PositionSample
from cairnkit.logging import getLogger


class TrackingStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"


@dataclass(frozen=True)
class TrackingState:
    status: TrackingStatus = TrackingStatus.IDLE
    message: Optional[str] = None
    errorKind: Optional[str] = None
    persistent: bool = False

    @property
    def isActive(self) -> bool:
        return self.status is TrackingStatus.ACTIVE

    @property
    def label(self) -> str:
        """Toggle button text"""
        return 'Actif' if self.isActive else 'Me localiser'

    def toDict(self) -> Dict[str, Any]:
        return {'status': self.status.value, 'label': self.label, 'message': self.message,
                'errorKind': self.errorKind, 'persistent': self.persistent}


IDLE = TrackingState()
ACTIVE = TrackingState(TrackingStatus.ACTIVE)


class TrackingController:

    def __init__(self, tracker: GeolocationTracker, marker: PositionMarkerController):
        self.tracker = tracker
        self.marker = marker
        self.log = getLogger()
        self.state: TrackingState = IDLE
        self.lastSample: Optional[PositionSample] = None
        self._listeners: List[Callable[[TrackingState], None]] = []

    @property
    def isTracking(self) -> bool:
        return self.state.isActive

    def addListener(self, listener: Callable[[TrackingState], None]) -> None:
        self._listeners.append(listener)

    def removeListener(self, listener: Callable[[TrackingState], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def toggle(self) -> TrackingState:
        if self.state.isActive:
            self.stop()
        else:
            self.start()
        return self.state

    def start(self) -> None:
        if self.state.isActive:
            return
        self._setState(ACTIVE)
        self.tracker.startTracking(self._onSample, self._onError)

    def stop(self) -> None:
        self.tracker.stopTracking()
        self.marker.onTrackingStopped()
        self.lastSample = None
        self._setState(IDLE)

    def teardown(self) -> None:
        """Viewer or service shutdown: end any subscription and drop the marker"""
        if self.state.isActive:
            self.stop()
        else:
            self.tracker.stopTracking()
            self.marker.onTrackingStopped()

    def _onSample(self, sample: PositionSample) -> None:
        if not self.state.isActive:
            return
        self.lastSample = sample
        self.marker.onSample(sample)

    def _onError(self, error: PositionError) -> None:
        self.marker.onTrackingStopped()
        self.lastSample = None
        self._setState(TrackingState(TrackingStatus.ERROR, message=error.message,
                                     errorKind=error.kind.value, persistent=error.persistent))

    def _setState(self, state: TrackingState) -> None:
        if state == self.state:
            return
        previous, self.state = self.state, state
        self.log.info("Tracking state changed", previous=previous.status.value, current=state.status.value,
                      error=state.message)
        for listener in list(self._listeners):
            listener(state)
