"""
cairnkit.globe - Geodetic calculations module

Public API:
    - Globe: WGS-84 conversions (LLA/ECEF/ENU)
"""

from .globe import Globe

__all__ = ['Globe']
