"""cairnkit - Reusable building blocks for Cairn applications

Contains reusable modules for:
    - logging: Structured hierarchical logging
    - globe: Geodetic conversions (WGS-84)
    - parsers: NMEA 0183 position sentence parsing
    - geolocation: Device position sources and the geolocation tracker
"""

__version__ = "1.0-beta"
__versionInfo__ = (1, 0, 0, "beta")
__changelog__ = {
    "1.0-beta": "Initial beta release with position tracking and geodesy"
}
