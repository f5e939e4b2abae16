"""
Cairn main entry point.

Runs the POI scene service: render host, POI layer, live tracking and the
HTTP/WebSocket edge in one asyncio process.

Usage:
    python -m cairn.main [--config path/to/config.json] [--pois path/or/url] [--source push|nmea|replay|none]
"""

import argparse
import asyncio

from cairn.app import CairnApp
from cairn.config import loadConfig
from cairn.server.server import CairnServer
from cairnkit.logging import configureLogging, getLogger, installServiceContextFilter, setServiceContext


def parseArgs(argv=None):
    parser = argparse.ArgumentParser(description='Cairn - POI globe with live position tracking')
    parser.add_argument('--config', default=None, help='Path to config file (defaults when omitted)')
    parser.add_argument('--pois', default=None, help='GeoJSON path or URL, overrides pois.source')
    parser.add_argument('--source', default=None, choices=['push', 'nmea', 'replay', 'none'],
                        help='Position source, overrides geolocation.source')
    parser.add_argument('--port', type=int, default=None, help='HTTP port, overrides server.port')
    return parser.parse_args(argv)


def main(argv=None):
    args = parseArgs(argv)

    bootLog = getLogger('cairn.main')
    config, usedDefaults = loadConfig(args.config, log=bootLog if args.config else None)

    logConfig = config['logging']
    configureLogging(logDir=logConfig.get('logDir'), maxBytes=logConfig.get('maxBytes', 10_000_000),
                     backupCount=logConfig.get('backupCount', 5), console=logConfig.get('console', True),
                     level=logConfig.get('level', 'INFO'))
    setServiceContext('cairn')

    if args.pois:
        config['pois']['source'] = args.pois
    if args.source:
        config['geolocation']['source'] = args.source
    if args.port:
        config['server']['port'] = args.port

    log = getLogger()
    installServiceContextFilter(log)
    log.info("Cairn starting", config=args.config or 'defaults', usedDefaults=usedDefaults)

    server = CairnServer(config['server'], CairnApp(config))

    async def runServer():
        try:
            await server.start()

            # Keep running
            while True:
                await asyncio.sleep(1)

        except asyncio.CancelledError:
            log.info("Shutdown signal received")
        finally:
            await server.stop()
            log.info("Cairn stopped")

    try:
        asyncio.run(runServer())
    except KeyboardInterrupt:
        pass


if __name__ == '__main__':
    main()
