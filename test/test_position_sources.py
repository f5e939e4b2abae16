"""
NMEA parsing and position source tests

Tests:
1. Sentence framing, checksum and field conversion
2. NmeaPositionSource over a fed stream: GGA fixes, GST accuracy, RMC motion, high accuracy filter
3. Device failures mapped to position errors
4. ReplayPositionSource from llas.csv
5. PushPositionSource fan-out and bounded queues
"""

import asyncio
import math
from unittest.mock import AsyncMock, MagicMock

import pytest

from cairnkit.geolocation import (
    NmeaPositionSource, PositionPermissionDenied, PositionSample, PositionUnavailable,
    PushPositionSource, ReplayPositionSource
)
from cairnkit.geolocation.ioLayer import IoLayer
from cairnkit.parsers import Nmea

from conftest import settle


def sentence(body: str) -> bytes:
    return f"${body}*{Nmea.checksum(body):02X}\r\n".encode('ascii')


GGA_FIX = 'GPGGA,123519,4524.984,N,00638.082,E,1,08,0.9,1850.0,M,48.0,M,,'
GGA_DGPS = 'GPGGA,123520,4524.990,N,00638.090,E,2,09,0.8,1851.0,M,48.0,M,,'
GGA_NO_FIX = 'GPGGA,123521,,,,,0,00,,,M,,M,,'
GST = 'GPGST,123519,1.0,2.0,1.5,45.0,3.0,4.0,5.0'
RMC = 'GPRMC,123519,A,4524.984,N,00638.082,E,10.0,90.0,191026,,,A'
GGA_GARBLED = 'GPGGA,123518,45-24.98,N,00638.082,E,1,08,0.9,1850.0,M,48.0,M,,'


class FeedIoLayer(IoLayer):
    """IoLayer handing out a StreamReader the test feeds directly"""

    def __init__(self, reader=None, openError=None):
        self.reader = reader
        self.openError = openError
        self.writer = MagicMock()
        self.writer.wait_closed = AsyncMock()

    async def openConnection(self, transportType, **kwargs):
        if self.openError is not None:
            raise self.openError
        return self.reader, self.writer


async def collect(source, highAccuracy=False):
    samples = []
    with pytest.raises(PositionUnavailable):
        async for sample in source.watch(highAccuracy):
            samples.append(sample)
    return samples


def fedSource(*sentences, chunked=False):
    reader = asyncio.StreamReader()
    data = b''.join(sentence(s) for s in sentences)
    if chunked:
        # Split mid-sentence so framing has to carry bytes between reads
        middle = len(data) // 2
        reader.feed_data(data[:middle])
        reader.feed_data(data[middle:])
    else:
        reader.feed_data(data)
    reader.feed_eof()
    ioLayer = FeedIoLayer(reader)
    return NmeaPositionSource(transportType='serial', ioLayer=ioLayer, readSize=64, port='/dev/ttyUSB0'), ioLayer


class TestNmeaParser:

    def test_parse_gga(self):
        message = Nmea().parse(sentence(GGA_FIX))
        data = message['GGA']
        assert data['quality'] == '1'
        assert data['lat (degMin)'] == '4524.984'
        assert data['talkerIdName'] == 'GPS'

    def test_checksum_mismatch(self):
        raw = f"${GGA_FIX}*00\r\n".encode('ascii')
        message = Nmea().parse(raw)
        assert message['unknownMessage']['info']['passedChecksum'] is False

    def test_unframed_input(self):
        assert Nmea().parse(b'hello') == {'noMessage': {}}

    def test_parse_all_keeps_partial_sentence(self):
        partial = sentence(GST)[:10]
        leftover, messages = Nmea().parseAll(sentence(GGA_FIX) + sentence(RMC) + partial)
        assert [next(iter(m)) for m in messages] == ['GGA', 'RMC']
        assert leftover == partial

    def test_deg_min_conversion(self):
        assert Nmea.degMinToDeg('4524.984', 'N') == pytest.approx(45.4164)
        assert Nmea.degMinToDeg('00638.082', 'W') == pytest.approx(-6.6347)
        assert Nmea.degMinToDeg('', 'N') is None
        assert Nmea.degMinToDeg('45-24.98', 'N') is None

    def test_to_float(self):
        assert Nmea.toFloat('1.5') == 1.5
        assert Nmea.toFloat('') is None
        assert Nmea.toFloat('abc') is None


class TestNmeaSource:

    @pytest.mark.asyncio
    async def test_gga_fix_becomes_sample(self):
        source, ioLayer = fedSource(GGA_FIX)
        samples = await collect(source)

        assert len(samples) == 1
        sample = samples[0]
        assert sample.lat == pytest.approx(45.4164)
        assert sample.lon == pytest.approx(6.6347)
        assert sample.altitude == pytest.approx(1898.0)
        assert sample.accuracy == pytest.approx(4.5)
        ioLayer.writer.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_gst_and_rmc_enrich_next_fix(self):
        source, _ = fedSource(GST, RMC, GGA_FIX, chunked=True)
        samples = await collect(source)

        assert len(samples) == 1
        assert samples[0].accuracy == pytest.approx(5.0)
        assert samples[0].heading == 90.0
        assert samples[0].speed == pytest.approx(5.14444)

    @pytest.mark.asyncio
    async def test_garbled_coordinates_skipped(self):
        source, _ = fedSource(GGA_GARBLED, GGA_FIX)
        samples = await collect(source)

        assert len(samples) == 1
        assert samples[0].lat == pytest.approx(45.4164)

    @pytest.mark.asyncio
    async def test_no_fix_sentences_skipped(self):
        source, _ = fedSource(GGA_NO_FIX, GGA_FIX)
        samples = await collect(source)
        assert len(samples) == 1

    @pytest.mark.asyncio
    async def test_high_accuracy_keeps_differential_fixes(self):
        source, _ = fedSource(GGA_FIX, GGA_DGPS)
        samples = await collect(source, highAccuracy=True)
        assert len(samples) == 1
        assert samples[0].lat == pytest.approx(45 + 24.990 / 60)

    @pytest.mark.asyncio
    async def test_last_sample_remembered(self):
        source, _ = fedSource(GGA_FIX)
        await collect(source)
        assert source.cachedSample(5.0) is not None

    @pytest.mark.asyncio
    async def test_permission_error_maps_to_denied(self):
        ioLayer = FeedIoLayer(openError=PermissionError(13, 'Permission denied'))
        source = NmeaPositionSource(transportType='serial', ioLayer=ioLayer, port='/dev/ttyUSB0')
        with pytest.raises(PositionPermissionDenied):
            async for _ in source.watch():
                pass

    @pytest.mark.asyncio
    async def test_open_failure_maps_to_unavailable(self):
        ioLayer = FeedIoLayer(openError=ConnectionRefusedError(111, 'Connection refused'))
        source = NmeaPositionSource(transportType='socket', ioLayer=ioLayer, host='127.0.0.1', port=10110)
        with pytest.raises(PositionUnavailable) as excInfo:
            async for _ in source.watch():
                pass
        assert '127.0.0.1:10110' in str(excInfo.value)


class TestReplaySource:

    @pytest.fixture
    def csvPath(self, tmp_path):
        path = tmp_path / 'llas.csv'
        path.write_text(
            'latitude (deg),longitude (deg),altitude (HAE-m)\n'
            '45.4164,6.6347,1850\n'
            'bad,6.6350,1851\n'
            '45.4170,6.6355,1852\n',
            encoding='utf-8'
        )
        return path

    def test_load_samples_from_csv(self, csvPath):
        samples = ReplayPositionSource(csvPath=csvPath).loadSamples()
        assert len(samples) == 3
        assert samples[0].altitude == 1850.0
        assert samples[0].accuracy == 10.0
        assert math.isnan(samples[1].lat)

    def test_missing_file(self, tmp_path):
        with pytest.raises(PositionUnavailable):
            ReplayPositionSource(csvPath=tmp_path / 'missing.csv').loadSamples()

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / 'llas.csv'
        path.write_bytes(b'latitude (deg),longitude (deg)\n45.4,6.6\xff\xfe\n')
        with pytest.raises(PositionUnavailable):
            ReplayPositionSource(csvPath=path).loadSamples()

    def test_requires_input(self):
        with pytest.raises(ValueError):
            ReplayPositionSource()

    @pytest.mark.asyncio
    async def test_replays_in_order(self, csvPath):
        source = ReplayPositionSource(csvPath=csvPath, interval=0.001)
        samples = []
        async for sample in source.watch():
            samples.append(sample)
            if len(samples) == 3:
                break

        assert samples[0].lat == 45.4164
        assert samples[2].lat == 45.4170
        assert source.lastSample.lat == 45.4170


class TestPushSource:

    @pytest.mark.asyncio
    async def test_push_reaches_every_watcher(self):
        source = PushPositionSource()
        received = {'a': [], 'b': []}

        async def consume(key):
            async for sample in source.watch():
                received[key].append(sample)

        tasks = [asyncio.ensure_future(consume('a')), asyncio.ensure_future(consume('b'))]
        await settle()
        assert source.watcherCount == 2

        source.push(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        await settle()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        assert len(received['a']) == 1
        assert len(received['b']) == 1
        assert source.watcherCount == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        source = PushPositionSource(queueMaxSize=2)
        iterator = source.watch().__aiter__()
        first = asyncio.ensure_future(iterator.__anext__())
        await settle()
        source.push(PositionSample(lat=45.0, lon=6.6, accuracy=10.0))
        assert (await first).lat == 45.0

        for lat in (45.1, 45.2, 45.3):
            source.push(PositionSample(lat=lat, lon=6.6, accuracy=10.0))

        assert source.queueDrops == 1
        assert (await iterator.__anext__()).lat == 45.2
        assert (await iterator.__anext__()).lat == 45.3
        await iterator.aclose()

    def test_push_without_watchers_is_cached(self):
        source = PushPositionSource()
        source.push(PositionSample(lat=45.40, lon=6.60, accuracy=10.0))
        assert source.cachedSample(5.0).lat == 45.40
