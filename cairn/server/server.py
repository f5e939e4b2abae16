"""
Cairn Server - HTTP and WebSocket edge.

Exposes the POI scene, selection, tracking and camera controls of a CairnApp.
Browser clients render the scene they receive on /ws and send back clicks,
keys and their own geolocation fixes.
"""

import uuid
from typing import Any, Dict, Optional

import orjson
from aiohttp import web, WSMsgType

from cairn.app import CairnApp
from cairn.core.errors import PoiLoadError
from cairn.core.renderHost import PickResult
from cairn.core.selection import PoiDetailView
from cairnkit.logging import getLogger


def _pickToDict(result: Optional[PickResult], app: CairnApp) -> Dict[str, Any]:
    if result is None:
        return {'hit': False, 'entityId': None, 'poi': None}
    poiId = result.properties.get('poiId')
    poi = app.getPoi(poiId) if poiId is not None else None
    return {'hit': True, 'entityId': result.entityId, 'poi': poi.toDict() if poi is not None else None}


class CairnServer:

    def __init__(self, config: Dict[str, Any], app: CairnApp):
        self.config = config
        self.cairn = app
        self.log = getLogger()
        self.connections: Dict[str, web.WebSocketResponse] = {}

        self.app = web.Application()
        self._setupRoutes()

        self._runner = None
        self._site = None

    def _setupRoutes(self):
        self.app.router.add_get('/ws', self.handleWebSocket)
        self.app.router.add_get('/health', self.handleHealth)
        self.app.router.add_get('/config', self.handleConfig)

        # POIs
        self.app.router.add_get('/api/pois', self.handleListPois)
        self.app.router.add_get('/api/pois/{poiId}', self.handleGetPoi)
        self.app.router.add_post('/api/pois/reload', self.handleReloadPois)

        # Selection
        self.app.router.add_post('/api/pick', self.handlePick)
        self.app.router.add_get('/api/selection', self.handleGetSelection)
        self.app.router.add_post('/api/selection/close', self.handleCloseSelection)
        self.app.router.add_get('/api/selection/detail', self.handleSelectionDetail)

        # Tracking
        self.app.router.add_get('/api/tracking', self.handleGetTracking)
        self.app.router.add_post('/api/tracking/toggle', self.handleToggleTracking)
        self.app.router.add_post('/api/position', self.handlePosition)

        # Camera
        self.app.router.add_post('/api/camera/home', self.handleCameraHome)
        self.app.router.add_post('/api/camera/key', self.handleCameraKey)

    async def start(self):
        self.log.info("[Server] Starting...")
        await self.cairn.start()

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        host = self.config.get('host', '0.0.0.0')
        port = self.config.get('port', 8080)
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        self.log.info(f"[Server] Listening on {host}:{port}")

    async def stop(self):
        self.log.info("[Server] Stopping...")

        for ws in list(self.connections.values()):
            await ws.close()

        await self.cairn.stop()

        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        self.log.info("[Server] Stopped")

    # =========================================================================
    # HTTP Handlers
    # =========================================================================

    async def _readJson(self, request: web.Request) -> Dict[str, Any]:
        """Request body as a JSON object. Empty body is an empty object"""
        raw = await request.read()
        if not raw:
            return {}
        data = orjson.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")
        return data

    async def handleHealth(self, request: web.Request) -> web.Response:
        return web.json_response({'status': 'ok', 'hostReady': self.cairn.viewer.isReady})

    async def handleConfig(self, request: web.Request) -> web.Response:
        """UI configuration: home view, canvas and tracking options"""
        viewer = self.cairn.viewer
        uiConfig = {
            'homeView': viewer.options.homeView.toDict(),
            'moveAmount': viewer.options.moveAmount,
            'twistAmount': viewer.options.twistAmount,
            'canvas': {'width': self.cairn.config['viewer']['width'], 'height': self.cairn.config['viewer']['height'],
                       'fov': self.cairn.config['viewer']['fov']},
            'geolocation': {'supported': self.cairn.tracker.isSupported,
                            'source': self.cairn.source.getKind() if self.cairn.source else None,
                            'highAccuracy': self.cairn.tracker.options.highAccuracy,
                            'timeout': self.cairn.tracker.options.timeout,
                            'maximumAge': self.cairn.tracker.options.maximumAge},
            'selection': {'clearDelay': self.cairn.selection.clearDelay},
            'metrics': self.cairn.metrics(),
        }
        return web.json_response(uiConfig)

    async def handleListPois(self, request: web.Request) -> web.Response:
        pois = self.cairn.poiLayer.pois
        return web.json_response({'pois': [poi.toDict() for poi in pois], 'count': len(pois),
                                  'usingSamplePois': self.cairn.usingSamplePois})

    async def handleGetPoi(self, request: web.Request) -> web.Response:
        poi = self.cairn.getPoi(request.match_info['poiId'])
        if poi is None:
            return web.json_response({'error': 'POI not found'}, status=404)
        return web.json_response({'poi': poi.toDict(), 'detail': PoiDetailView.fromPoi(poi).toDict()})

    async def handleReloadPois(self, request: web.Request) -> web.Response:
        try:
            data = await self._readJson(request)
            count, usedSamples = await self.cairn.reloadPOIs(data.get('source'))
            return web.json_response({'count': count, 'usingSamplePois': usedSamples})
        except ValueError as e:
            return web.json_response({'error': str(e)}, status=400)
        except PoiLoadError as e:
            return web.json_response({'error': str(e)}, status=502)

    async def handlePick(self, request: web.Request) -> web.Response:
        try:
            data = await self._readJson(request)
            x, y = float(data['x']), float(data['y'])
        except (KeyError, TypeError, ValueError):
            return web.json_response({'error': 'x and y are required numbers'}, status=400)

        if not self.cairn.viewer.isReady:
            return web.json_response({'error': 'Render host not ready'}, status=503)
        result = self.cairn.click(x, y)
        return web.json_response({**_pickToDict(result, self.cairn), 'selection': self.cairn.selection.snapshot()})

    async def handleGetSelection(self, request: web.Request) -> web.Response:
        return web.json_response(self.cairn.selection.snapshot())

    async def handleCloseSelection(self, request: web.Request) -> web.Response:
        self.cairn.selection.requestClose()
        return web.json_response(self.cairn.selection.snapshot())

    async def handleSelectionDetail(self, request: web.Request) -> web.Response:
        detail = self.cairn.selection.detailView()
        if detail is None:
            return web.json_response({'error': 'No POI selected'}, status=404)
        return web.json_response({'detail': detail.toDict(), 'popupOpen': self.cairn.selection.popupOpen})

    async def handleGetTracking(self, request: web.Request) -> web.Response:
        sample = self.cairn.tracking.lastSample
        return web.json_response({'tracking': self.cairn.tracking.state.toDict(),
                                  'lastSample': sample.toDict() if sample is not None else None,
                                  'marker': self.cairn.marker.hasMarker})

    async def handleToggleTracking(self, request: web.Request) -> web.Response:
        state = self.cairn.tracking.toggle()
        return web.json_response({'tracking': state.toDict()})

    async def handlePosition(self, request: web.Request) -> web.Response:
        try:
            data = await self._readJson(request)
            self.cairn.pushPosition(data)
        except (TypeError, ValueError, AttributeError) as e:
            return web.json_response({'error': str(e)}, status=400)
        return web.json_response({'ok': True, 'tracking': self.cairn.tracking.state.toDict()})

    async def handleCameraHome(self, request: web.Request) -> web.Response:
        if not self.cairn.viewer.flyHome():
            return web.json_response({'error': 'Render host not ready'}, status=503)
        return web.json_response({'ok': True, 'destination': self.cairn.viewer.options.homeView.toDict()})

    async def handleCameraKey(self, request: web.Request) -> web.Response:
        try:
            data = await self._readJson(request)
            key = str(data['key'])
        except (KeyError, ValueError):
            return web.json_response({'error': 'key is required'}, status=400)

        if not self.cairn.viewer.isReady:
            return web.json_response({'error': 'Render host not ready'}, status=503)
        handled = self.cairn.viewer.handleKey(key)
        return web.json_response({'handled': handled, 'camera': self.cairn.viewer.host.getView().toDict()})

    # =========================================================================
    # WebSocket
    # =========================================================================

    async def handleWebSocket(self, request: web.Request) -> web.WebSocketResponse:
        connId = str(uuid.uuid4())
        self.log.info(f"[Server] WebSocket connection: {connId} from {request.remote}")

        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)
        self.connections[connId] = ws
        await self.cairn.broadcaster.addClient(ws)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._handleMessage(ws, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    self.log.error(f"[Server] WebSocket error: {ws.exception()}")

        except Exception as e:
            self.log.error(f"[Server] Error in WebSocket loop: {e}", exc_info=True)

        finally:
            self.cairn.broadcaster.removeClient(ws)
            self.connections.pop(connId, None)
            self.log.info(f"[Server] Disconnected: {connId}")

        return ws

    async def _handleMessage(self, ws: web.WebSocketResponse, data: str):
        """Client input: click, key, toggleTracking, closeSelection, position, home"""
        try:
            message = orjson.loads(data)
            msgType = message.get('type')

            if msgType == 'click':
                result = self.cairn.click(float(message['x']), float(message['y']))
                await ws.send_json({'type': 'pick', **_pickToDict(result, self.cairn)})
            elif msgType == 'key':
                self.cairn.viewer.handleKey(str(message['key']))
            elif msgType == 'toggleTracking':
                self.cairn.tracking.toggle()
            elif msgType == 'closeSelection':
                self.cairn.selection.requestClose()
            elif msgType == 'position':
                self.cairn.pushPosition(message)
            elif msgType == 'home':
                self.cairn.viewer.flyHome()
            else:
                await ws.send_json({'type': 'error', 'error': f'Unknown message type: {msgType}'})

        except (KeyError, TypeError, ValueError, AttributeError) as e:
            await ws.send_json({'type': 'error', 'error': f'Invalid message: {e}'})
