"""Position error taxonomy shared by position sources and the geolocation tracker."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of ways continuous positioning can fail"""
    PERMISSION_DENIED = "permissionDenied"
    POSITION_UNAVAILABLE = "positionUnavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


class PositionError(Exception):
    """Base class for position failures. Carries a numeric code compatible with browser geolocation."""

    code = 0
    kind = ErrorKind.POSITION_UNAVAILABLE
    defaultMessage = "Unknown geolocation error"
    persistent = False          # Persistent errors cannot be fixed by toggling again

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.defaultMessage)

    @property
    def message(self) -> str:
        return str(self)


class PositionPermissionDenied(PositionError):
    """The user or the operating system refused access to the position device."""
    code = 1
    kind = ErrorKind.PERMISSION_DENIED
    defaultMessage = "User denied geolocation permission"


class PositionUnavailable(PositionError):
    """The device could not produce a position (no fix, stream closed, I/O failure)."""
    code = 2
    kind = ErrorKind.POSITION_UNAVAILABLE
    defaultMessage = "Position information is unavailable"


class PositionTimeout(PositionError):
    """No valid fix arrived within the configured initial wait."""
    code = 3
    kind = ErrorKind.TIMEOUT
    defaultMessage = "Geolocation request timed out"


class PositionSourceUnavailable(PositionError):
    """No position capability is configured on this device."""
    code = 0
    kind = ErrorKind.UNSUPPORTED
    defaultMessage = "Geolocation is not supported by this device"
    persistent = True


_BY_CODE = {cls.code: cls for cls in (PositionPermissionDenied, PositionUnavailable, PositionTimeout)}


def errorFromCode(code: int, message: Optional[str] = None) -> PositionError:
    """Map a browser GeolocationPositionError code (1, 2, 3) to its exception. Unknown codes are 'unavailable'."""
    errorClass = _BY_CODE.get(code)
    if errorClass is None:
        return PositionUnavailable(message or PositionError.defaultMessage)
    return errorClass(message)


__all__ = [
    'ErrorKind',
    'PositionError',
    'PositionPermissionDenied',
    'PositionUnavailable',
    'PositionTimeout',
    'PositionSourceUnavailable',
    'errorFromCode',
]
