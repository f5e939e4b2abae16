"""Configuration loading with shared fallbacks."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import orjson


DEFAULT_CONFIG: Dict[str, Any] = {
    'configVersion': '1.0',
    'server': {'host': '0.0.0.0', 'port': 8080},
    'logging': {'logDir': None, 'level': 'INFO', 'console': True, 'maxBytes': 10 * 1024 * 1024, 'backupCount': 5},
    'viewer': {
        'homeView': {'lon': 6.6347, 'lat': 45.4164, 'height': 15000.0, 'heading': 0.0, 'pitch': -45.0, 'roll': 0.0},
        'homeFlightDuration': 3.0,
        'moveAmount': 1000.0,
        'twistAmount': 1.0,
        'width': 1280,
        'height': 720,
        'fov': 60.0,
        'pickRadius': 20.0,
    },
    'pois': {'source': 'data/pois.geojson', 'timeout': 10.0, 'fallbackToSamples': True},
    'geolocation': {
        'source': 'push',               # push | nmea | replay | none
        'highAccuracy': False,
        'timeout': 10.0,
        'maximumAge': 5.0,
        'nmea': {'transportType': 'serial', 'port': '/dev/ttyUSB0', 'baudrate': 9600},
        'replay': {'csvPath': None, 'interval': 1.0, 'repeat': False},
    },
    'marker': {'maxAccuracyRadius': 100.0, 'flyToHeight': 5000.0, 'flyToDuration': 2.0, 'flyToMaxAccuracy': None},
    'selection': {'clearDelay': 0.3},
    'broadcast': {'batchSize': 25, 'batchWindow': 0.1, 'queueMaxSize': 200},
}

ConfigResult = Tuple[Dict[str, Any], bool]


def mergeConfig(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive merge, override wins. Neither argument is mutated"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = mergeConfig(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _validateConfig(config: Any) -> None:
    if not isinstance(config, dict):
        raise ValueError('config is not a JSON object')
    for section in ('server', 'viewer', 'pois', 'geolocation'):
        if section in config and not isinstance(config[section], dict):
            raise ValueError(f"Section '{section}' must be an object")


def loadConfig(path: Optional[str | Path], log: Optional[object] = None) -> ConfigResult:
    """Load a JSON config merged over DEFAULT_CONFIG. Returns (config, usedDefaults)"""
    if path is None:
        return copy.deepcopy(DEFAULT_CONFIG), True

    cfgPath = Path(path)
    try:
        config = orjson.loads(cfgPath.read_bytes())
        _validateConfig(config)
        if log:
            log.info('Loaded config', configPath=str(cfgPath), configVersion=config.get('configVersion', '1.0'))
        return mergeConfig(DEFAULT_CONFIG, config), False
    except (OSError, ValueError) as exc:
        if log:
            log.warning('Failed to load config, using defaults', configPath=str(cfgPath),
                        errorClass=type(exc).__name__, errorMsg=str(exc))
        return copy.deepcopy(DEFAULT_CONFIG), True
