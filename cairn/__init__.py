"""
Cairn - points of interest on a 3D globe with live position tracking

Packages:
    - core: POI model, render host surface, entity reconciliation, position
      marker, tracking state machine, selection and viewer lifecycle
    - server: aiohttp HTTP/WebSocket edge and scene broadcaster
"""

__version__ = "1.0.0"
