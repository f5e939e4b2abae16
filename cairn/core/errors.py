"""Central error types for the Cairn core."""

from __future__ import annotations


class CairnError(RuntimeError):
    """Base error for Cairn failures."""


class RenderHostError(CairnError):
    """Raised by a render host for invalid scene operations (duplicate entity id, second pick handler)."""


class RenderHostUnavailable(RenderHostError):
    """Raised when an operation needs a live render host and none is published, or it was destroyed."""


class PoiLoadError(CairnError):
    """Raised when a POI feature collection cannot be fetched or is structurally invalid."""


__all__ = [
    "CairnError",
    "RenderHostError",
    "RenderHostUnavailable",
    "PoiLoadError",
]
