"""
Package init for cairn.server

    - server.CairnServer: aiohttp HTTP/WebSocket edge
    - sceneBroadcast.SceneBroadcaster: batched scene mirroring to WebSocket clients
"""
