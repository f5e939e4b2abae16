"""
cairnkit.geolocation - Device position sources and continuous tracking

Public API:
    - GeolocationTracker, TrackingOptions: start/stop subscription over a source
    - PositionSample: one device fix
    - PositionSource and implementations: NmeaPositionSource, ReplayPositionSource, PushPositionSource
    - Position errors: PositionError, PositionPermissionDenied, PositionUnavailable,
      PositionTimeout, PositionSourceUnavailable, errorFromCode
"""

from .errors import (
    ErrorKind,
    PositionError,
    PositionPermissionDenied,
    PositionUnavailable,
    PositionTimeout,
    PositionSourceUnavailable,
    errorFromCode,
)
from .positionSource import (
    PositionSample,
    PositionSource,
    NmeaPositionSource,
    ReplayPositionSource,
    PushPositionSource,
)
from .tracker import GeolocationTracker, TrackingOptions

__all__ = [
    'ErrorKind', 'PositionError', 'PositionPermissionDenied', 'PositionUnavailable',
    'PositionTimeout', 'PositionSourceUnavailable', 'errorFromCode',
    'PositionSample', 'PositionSource', 'NmeaPositionSource', 'ReplayPositionSource', 'PushPositionSource',
    'GeolocationTracker', 'TrackingOptions',
]
