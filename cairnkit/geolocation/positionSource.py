"""
Position sources

A PositionSource turns some device into an async stream of PositionSample.
The tracker owns subscription lifecycle; sources only produce samples and
raise PositionError subclasses when the device fails.

Sources:
- NmeaPositionSource: NMEA 0183 receiver on a serial port or TCP socket
- ReplayPositionSource: llas.csv file or in-memory samples replayed at a fixed rate
- PushPositionSource: samples relayed by a client (browser geolocation over HTTP/WebSocket)
"""

import asyncio
import csv
import errno
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Union

from cairnkit.geolocation.errors import (
    PositionError, PositionPermissionDenied, PositionUnavailable
)
from cairnkit.geolocation.ioLayer import IoLayer
from cairnkit.logging import getLogger
from cairnkit.parsers import Nmea, DIFFERENTIAL_QUALITIES


# User equivalent range error used to turn HDOP into meters when no GST is available
UERE_METERS = 5.0

# Accuracy reported when a receiver gives neither GST nor HDOP
DEFAULT_ACCURACY_METERS = 50.0

KNOTS_TO_MPS = 0.514444


@dataclass(frozen=True)
class PositionSample:
    """One device fix. Altitude is HAE meters, accuracy is a horizontal radius in meters."""
    lat: float
    lon: float
    accuracy: float
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    def isValid(self) -> bool:
        """Samples without finite latitude/longitude are unusable"""
        try:
            return math.isfinite(self.lat) and math.isfinite(self.lon)
        except TypeError:
            return False

    def toDict(self) -> Dict[str, Any]:
        return {'lat': self.lat, 'lon': self.lon, 'altitude': self.altitude, 'accuracy': self.accuracy,
                'heading': self.heading, 'speed': self.speed, 'timestamp': self.timestamp}

    @classmethod
    def fromDict(cls, payload: Dict[str, Any]) -> 'PositionSample':
        """
        Build a sample from a relayed payload.

        Accepts both our own field names and browser GeolocationCoordinates names
        (latitude/longitude). Raises ValueError when latitude/longitude are missing
        or accuracy is not a finite, non-negative radius.
        """
        coords = payload.get('coords', payload)
        if not isinstance(coords, dict):
            raise ValueError("coords must be an object")
        lat = coords.get('lat', coords.get('latitude'))
        lon = coords.get('lon', coords.get('longitude'))
        if lat is None or lon is None:
            raise ValueError("lat and lon are required")

        def optional(key):
            value = coords.get(key)
            return None if value is None else float(value)

        accuracy = float(coords.get('accuracy', DEFAULT_ACCURACY_METERS))
        if not math.isfinite(accuracy) or accuracy < 0:
            raise ValueError(f"Invalid accuracy: {accuracy}")

        timestamp = payload.get('timestamp')
        return cls(lat=float(lat), lon=float(lon), accuracy=accuracy,
                   altitude=optional('altitude'), heading=optional('heading'), speed=optional('speed'),
                   timestamp=float(timestamp) if timestamp is not None else time.time())


class PositionSource(ABC):
    """Abstract base for anything that yields position samples"""

    def __init__(self):
        self.lastSample: Optional[PositionSample] = None
        self.log = getLogger()

    @abstractmethod
    def watch(self, highAccuracy: bool = False) -> AsyncIterator[PositionSample]:
        """
        Async iterator of samples, continuous until cancelled.

        Raises PositionError subclasses on device failure. highAccuracy asks the
        source to only report its most precise fixes; sources without a notion of
        fix quality ignore it.
        """

    def getKind(self) -> str:
        return type(self).__name__

    def remember(self, sample: PositionSample) -> PositionSample:
        if sample.isValid():
            self.lastSample = sample
        return sample

    def cachedSample(self, maximumAge: float) -> Optional[PositionSample]:
        """Last valid sample if it is no older than maximumAge seconds"""
        if self.lastSample is None or maximumAge <= 0:
            return None
        if time.time() - self.lastSample.timestamp <= maximumAge:
            return self.lastSample
        return None


class NmeaPositionSource(PositionSource):
    """
    NMEA 0183 receiver.

    Fix sentences (GGA/GNS) produce samples. RMC/VTG update speed and heading,
    GST updates the horizontal accuracy used by the next fix.
    """

    def __init__(self, transportType: str = 'serial', ioLayer: Optional[IoLayer] = None,
                 readSize: int = 4096, **connection):
        super().__init__()
        self.transportType = transportType
        self.connection = connection
        self.ioLayer = ioLayer or IoLayer()
        self.readSize = readSize
        self.nmea = Nmea()
        self._resetMotion()

    def _resetMotion(self):
        self._speed: Optional[float] = None
        self._heading: Optional[float] = None
        self._gstAccuracy: Optional[float] = None

    def _target(self) -> str:
        if self.transportType == 'serial':
            return str(self.connection.get('port'))
        return f"{self.connection.get('host')}:{self.connection.get('port')}"

    async def _open(self):
        try:
            return await self.ioLayer.openConnection(self.transportType, **self.connection)
        except PermissionError as e:
            raise PositionPermissionDenied(f"Access to {self._target()} denied") from e
        except OSError as e:
            # pyserial wraps EACCES in SerialException
            if getattr(e, 'errno', None) == errno.EACCES:
                raise PositionPermissionDenied(f"Access to {self._target()} denied") from e
            raise PositionUnavailable(f"Cannot open {self._target()}: {e}") from e

    async def watch(self, highAccuracy: bool = False) -> AsyncIterator[PositionSample]:
        reader, writer = await self._open()
        self._resetMotion()
        buffer = b''
        try:
            while True:
                try:
                    chunk = await self.ioLayer.receive(reader, self.readSize)
                except OSError as e:
                    raise PositionUnavailable(f"Read from {self._target()} failed: {e}") from e
                if not chunk:
                    raise PositionUnavailable(f"Position stream from {self._target()} ended")

                buffer, messages = self.nmea.parseAll(buffer + chunk)
                buffer = buffer[-self.readSize:]
                for message in messages:
                    sample = self.applyMessage(message, highAccuracy)
                    if sample is not None:
                        yield self.remember(sample)
        finally:
            await self.ioLayer.closeConnection(writer)

    def applyMessage(self, message: dict, highAccuracy: bool = False) -> Optional[PositionSample]:
        """Fold one parsed sentence into the motion/accuracy state. Returns a sample for fix sentences"""
        formatter, data = next(iter(message.items()))
        toFloat = self.nmea.toFloat

        if formatter == 'RMC':
            if data.get('status') != 'A':
                return None
            knots = toFloat(data.get('spd (knots)'))
            self._speed = None if knots is None else knots * KNOTS_TO_MPS
            self._heading = toFloat(data.get('cog (deg)'))
            return None

        if formatter == 'VTG':
            kmh = toFloat(data.get('sogk (km/h)'))
            if kmh is not None:
                self._speed = kmh / 3.6
            self._heading = toFloat(data.get('cogt (deg)'))
            return None

        if formatter == 'GST':
            stdLat, stdLon = toFloat(data.get('stdLat (m)')), toFloat(data.get('stdLong (m)'))
            if stdLat is not None and stdLon is not None:
                self._gstAccuracy = math.hypot(stdLat, stdLon)
            return None

        if formatter == 'GGA':
            quality = data.get('quality', '0')
            if quality in ('', '0'):
                return None
            if highAccuracy and quality not in DIFFERENTIAL_QUALITIES:
                return None
            return self._buildSample(data)

        if formatter == 'GNS':
            posMode = data.get('posMode', 'N')
            if not posMode or set(posMode) <= {'N'}:
                return None
            if highAccuracy and not set(posMode) & {'D', 'R', 'F'}:
                return None
            return self._buildSample(data)

        return None

    def _buildSample(self, data: dict) -> Optional[PositionSample]:
        lat = self.nmea.degMinToDeg(data.get('lat (degMin)', ''), data.get('NS', ''))
        lon = self.nmea.degMinToDeg(data.get('lon (degMin)', ''), data.get('EW', ''))
        if lat is None or lon is None:
            return None

        # MSL altitude plus geoid separation gives height above the ellipsoid
        msl = self.nmea.toFloat(data.get('alt (m)'))
        sep = self.nmea.toFloat(data.get('sep (m)')) or 0.0
        altitude = None if msl is None else msl + sep

        if self._gstAccuracy is not None:
            accuracy = self._gstAccuracy
        else:
            hdop = self.nmea.toFloat(data.get('HDOP'))
            accuracy = hdop * UERE_METERS if hdop is not None else DEFAULT_ACCURACY_METERS

        return PositionSample(lat=lat, lon=lon, accuracy=accuracy, altitude=altitude,
                              heading=self._heading, speed=self._speed)


class ReplayPositionSource(PositionSource):
    """
    Replays recorded samples at a fixed interval.

    Reads llas.csv columns: latitude (deg), longitude (deg), altitude (HAE-m) and
    optionally accuracy (m), heading (deg), speed (m/s). Rows with unreadable
    coordinates are replayed as NaN so the tracker drops them like any malformed fix.
    After the last sample the source holds still (repeat=False) or starts over.
    """

    COLUMNS = {
        'lat': 'latitude (deg)',
        'lon': 'longitude (deg)',
        'altitude': 'altitude (HAE-m)',
        'accuracy': 'accuracy (m)',
        'heading': 'heading (deg)',
        'speed': 'speed (m/s)',
    }

    def __init__(self, samples: Optional[Iterable[PositionSample]] = None,
                 csvPath: Optional[Union[str, Path]] = None,
                 interval: float = 1.0, repeat: bool = False,
                 defaultAccuracy: float = 10.0):
        super().__init__()
        if samples is None and csvPath is None:
            raise ValueError("ReplayPositionSource needs samples or csvPath")
        self._samples = list(samples) if samples is not None else None
        self.csvPath = Path(csvPath) if csvPath is not None else None
        self.interval = float(interval)
        self.repeat = repeat
        self.defaultAccuracy = defaultAccuracy

    def loadSamples(self) -> List[PositionSample]:
        if self._samples is not None:
            return list(self._samples)

        try:
            with open(self.csvPath, 'r', newline='', encoding='utf-8') as f:
                rows = list(csv.DictReader(f))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise PositionUnavailable(f"Cannot read replay file {self.csvPath}: {e}") from e

        samples = []
        for row in rows:
            values = {key: Nmea.toFloat(row.get(column)) for key, column in self.COLUMNS.items()}
            samples.append(PositionSample(
                lat=values['lat'] if values['lat'] is not None else math.nan,
                lon=values['lon'] if values['lon'] is not None else math.nan,
                accuracy=values['accuracy'] if values['accuracy'] is not None else self.defaultAccuracy,
                altitude=values['altitude'], heading=values['heading'], speed=values['speed']))
        self.log.info("Loaded replay samples", path=str(self.csvPath), count=len(samples))
        return samples

    async def watch(self, highAccuracy: bool = False) -> AsyncIterator[PositionSample]:
        samples = self.loadSamples()
        if not samples:
            raise PositionUnavailable("Replay contains no samples")

        first = True
        while True:
            for sample in samples:
                if not first:
                    await asyncio.sleep(self.interval)
                first = False
                yield self.remember(replace(sample, timestamp=time.time()))
            if not self.repeat:
                break

        # Hold the last position until cancelled
        await asyncio.Event().wait()


class PushPositionSource(PositionSource):
    """
    Samples relayed from a client device.

    push()/fail() may be called whether or not anyone is watching; each active
    watcher has its own bounded queue and the oldest entry is dropped when full.
    """

    def __init__(self, queueMaxSize: int = 32):
        super().__init__()
        self.queueMaxSize = queueMaxSize
        self._queues: Set[asyncio.Queue] = set()
        self.queueDrops = 0

    @property
    def watcherCount(self) -> int:
        return len(self._queues)

    def push(self, sample: PositionSample) -> None:
        self.remember(sample)
        self._offer(sample)

    def fail(self, error: PositionError) -> None:
        self._offer(error)

    def _offer(self, item) -> None:
        for queue in list(self._queues):
            try:
                queue.put_nowait(item)
            except asyncio.QueueFull:
                queue.get_nowait()
                queue.put_nowait(item)
                self.queueDrops += 1

    async def watch(self, highAccuracy: bool = False) -> AsyncIterator[PositionSample]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queueMaxSize)
        self._queues.add(queue)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, PositionError):
                    raise item
                yield item
        finally:
            self._queues.discard(queue)
