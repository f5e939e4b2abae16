"""
cairnkit.logging - Hierarchical structured logger with automatic name detection.

API:
    from cairnkit.logging import getLogger

    class PositionMarkerController:
        def __init__(self):
            self.log = getLogger()      # Auto: 'cairn.core.positionMarker.PositionMarkerController'

        def onSample(self, sample):
            self.log.debug("Sample", lat=sample.lat, lon=sample.lon)

    # Global configuration (optional, once at app startup)
    from cairnkit.logging import configureLogging
    configureLogging(logDir='../logs', maxBytes=10_000_000, maxTotalMb=512)
"""

from .logger import getLogger, configureLogging
from .context import (
    setServiceContext,
    getServiceContext,
    clearServiceContext,
    installServiceContextFilter
)

__all__ = [
    'getLogger',
    'configureLogging',
    'setServiceContext',
    'getServiceContext',
    'clearServiceContext',
    'installServiceContextFilter'
]
