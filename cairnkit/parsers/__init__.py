# -*- coding: utf-8 -*-
"""
cairnkit.parsers - Position sentence parsing

Public API:
    - Nmea: NMEA 0183 parser (GGA, GNS, GST, RMC, VTG)
"""

from .nmea import Nmea, DIFFERENTIAL_QUALITIES

__all__ = ['Nmea', 'DIFFERENTIAL_QUALITIES']
