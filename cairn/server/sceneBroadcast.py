"""
SceneBroadcaster - mirrors the render host scene to browser clients

Scene listener events (entity add/update/remove, camera moves, flights) and
service state changes are queued, drained in small batches and pushed to
every connected WebSocket. New clients get a full snapshot first.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

import orjson
from aiohttp import web

from cairn.core.renderHost import RenderHost
from cairn.core.viewer import SceneConsumer
from cairnkit.logging import getLogger


class SceneBroadcaster(SceneConsumer):

    DEFAULT_BATCH_SIZE = 25
    DEFAULT_BATCH_WINDOW = 0.1  # 10 Hz
    DEFAULT_QUEUE_MAX_SIZE = 200

    def __init__(self, batchSize: int = DEFAULT_BATCH_SIZE, batchWindow: float = DEFAULT_BATCH_WINDOW,
                 queueMaxSize: int = DEFAULT_QUEUE_MAX_SIZE):
        self.log = getLogger()
        self.host: Optional[RenderHost] = None
        self.websockets: Set[web.WebSocketResponse] = set()
        self.updateQueue: Optional[asyncio.Queue] = None
        self.drainTask: Optional[asyncio.Task] = None
        self.snapshotProviders: Dict[str, Callable[[], Any]] = {}
        self.queueDrops, self.totalUpdates, self.totalBroadcasts = 0, 0, 0

        self.batchSize = int(batchSize)
        self.batchWindow = float(batchWindow)
        self.queueMaxSize = int(queueMaxSize)

    async def start(self) -> None:
        if self.updateQueue is None:
            self.updateQueue = asyncio.Queue(maxsize=self.queueMaxSize)
        if self.drainTask is None or self.drainTask.done():
            self.drainTask = asyncio.create_task(self.drainUpdateQueue(), name='sceneBroadcastDrain')

    async def stop(self) -> None:
        if self.drainTask and not self.drainTask.done():
            self.drainTask.cancel()
            try:
                await self.drainTask
            except asyncio.CancelledError:
                pass
        self.drainTask = None

        for ws in list(self.websockets):
            self.websockets.discard(ws)
            await ws.close()

    # Scene consumer
    def attach(self, host: RenderHost) -> None:
        if host is self.host:
            return
        self.detach()
        self.host = host
        host.addListener(self.onSceneEvent)
        self.queueMessage({'type': 'reset', 'camera': host.getView().toDict()})

    def detach(self) -> None:
        host, self.host = self.host, None
        if host is not None:
            host.removeListener(self.onSceneEvent)

    def addSnapshotProvider(self, name: str, provider: Callable[[], Any]) -> None:
        self.snapshotProviders[name] = provider

    def onSceneEvent(self, event: str, payload: Dict[str, Any]) -> None:
        self.queueMessage({'type': event, **payload})

    def publish(self, messageType: str, **payload) -> None:
        self.queueMessage({'type': messageType, **payload})

    def queueMessage(self, message: Dict[str, Any]) -> None:
        if self.updateQueue is None:
            return

        self.totalUpdates += 1
        try:
            self.updateQueue.put_nowait(message)
        except asyncio.QueueFull:
            # Oldest update goes first
            try:
                self.updateQueue.get_nowait()
                self.updateQueue.put_nowait(message)
                self.queueDrops += 1
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

    async def drainUpdateQueue(self) -> None:
        batch: List[Dict[str, Any]] = []

        while True:
            await asyncio.sleep(self.batchWindow)
            try:
                while not self.updateQueue.empty() and len(batch) < self.batchSize:
                    batch.append(self.updateQueue.get_nowait())

                if batch:
                    if len(batch) == 1:
                        await self.broadcast(batch[0])
                    else:
                        await self.broadcast({'type': 'batch', 'updates': batch})
                    batch.clear()
                    self.totalBroadcasts += 1

            except Exception as e:
                batch.clear()
                self.log.error(f"Error in scene update queue drain: {e}", exc_info=True)

    async def broadcast(self, message: Dict[str, Any]) -> None:
        if not self.websockets:
            return

        payload = orjson.dumps(message).decode()
        disconnected = []
        for ws in list(self.websockets):
            try:
                await ws.send_str(payload)
            except (ConnectionError, RuntimeError):
                disconnected.append(ws)

        for ws in disconnected:
            self.websockets.discard(ws)

    def snapshot(self) -> Dict[str, Any]:
        host = self.host
        entities = []
        camera = None
        if host is not None and not host.destroyed:
            entities = [host.getEntity(entityId).toDict() for entityId in host.entityIds()]
            camera = host.getView().toDict()

        snapshot = {'type': 'snapshot', 'entities': entities, 'camera': camera}
        for name, provider in self.snapshotProviders.items():
            snapshot[name] = provider()
        return snapshot

    async def addClient(self, ws: web.WebSocketResponse) -> None:
        self.websockets.add(ws)
        await ws.send_str(orjson.dumps({
            'type': 'config',
            'batchWindow': self.batchWindow,
            'batchSize': self.batchSize,
        }).decode())
        await ws.send_str(orjson.dumps(self.snapshot()).decode())

    def removeClient(self, ws: web.WebSocketResponse) -> None:
        self.websockets.discard(ws)

    def getMetrics(self) -> Dict[str, Any]:
        return {'connectedClients': len(self.websockets), 'queueDrops': self.queueDrops,
                'totalUpdates': self.totalUpdates, 'totalBroadcasts': self.totalBroadcasts,
                'queueSize': self.updateQueue.qsize() if self.updateQueue else 0}
