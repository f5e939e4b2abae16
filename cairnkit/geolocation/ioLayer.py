"""
I/O Layer - Stream transport for position devices.

Opens serial ports and TCP sockets behind one reader/writer API so position
sources never care where their bytes come from.
"""


# Imports
import asyncio, serial_asyncio
from cairnkit.logging import getLogger

# Module-level logger (auto-detects: 'geolocation.ioLayer')
log = getLogger()


class IoLayer:

    # --- API Methods ---
    async def openConnection(self, transportType: str, **kwargs):
        transportType = transportType.lower()
        if transportType == 'serial':
            return await self._openSerial(**kwargs)
        elif transportType == 'socket':
            return await self._openSocket(**kwargs)
        else:
            raise ValueError(f'Unsupported transport type: {transportType}')


    async def closeConnection(self, writer):
        if writer is None:
            return
        writer.close()
        if hasattr(writer, 'wait_closed'):
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                log.debug('Connection already gone while closing', error=str(e))


    async def receive(self, reader, size: int = 4096) -> bytes:
        return await reader.read(size)


    # --- Internal Methods ---
    async def _openSerial(self, port: str, baudrate: int = 9600, **kwargs):
        reader, writer = await serial_asyncio.open_serial_connection(url=port, baudrate=baudrate)
        log.info('Opened serial connection', port=port, baudrate=baudrate)
        return reader, writer


    async def _openSocket(self, host: str, port: int, **kwargs):
        reader, writer = await asyncio.open_connection(host, port)
        log.info('Opened TCP socket', host=host, port=port)
        return reader, writer
