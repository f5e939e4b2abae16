"""
Hierarchical structured logger with automatic name detection.

Features:
- Logger name derived from the caller's module and class (computed once, cached)
- Optional log directory with size-based rotation and a global disk budget
- Structured keyword fields appended to every message
- Stdlib logging underneath, no extra dependencies

Usage:
    from cairnkit.logging import getLogger

    # Class-level (computed once in __init__)
    class PoiEntityReconciler:
        def __init__(self):
            self.log = getLogger()          # 'cairn.core.poiLayer.PoiEntityReconciler'

        def setPOIs(self, pois):
            self.log.info("Reconciled", count=len(pois))

    # Module-level (computed once at import)
    log = getLogger()                        # 'geolocation.tracker'
"""

# Imports
import inspect, logging, logging.handlers, os, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz


# Global state
_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # logPath -> shared handler
_config = {
    'logDir': None,                 # None: console only
    'maxBytes': 10_000_000,         # 10 MB per file before rotation
    'backupCount': 5,
    'maxTotalMb': 512,              # Budget across every file in logDir
    'console': True,
    'level': logging.INFO,
    'utc': False
}

# LogRecord attributes that are never rendered as structured fields
_RESERVED = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, maxTotalMb: int = 512,
                     console: bool = True, level: str = 'INFO', utc: bool = False):
    """
    Configure global logging settings (call once at app startup).

    Args:
        logDir: Directory for log files. Falls back to $CAIRN_LOG_DIR; console only when neither is set.
        maxBytes: Maximum size per log file before rotation
        backupCount: Rotated files kept per application
        maxTotalMb: Total disk budget for logDir in MB, oldest files go first
        console: Also log to stderr
        level: Minimum log level name
        utc: Use UTC timestamps instead of local time
    """
    global _configured

    if logDir is None:
        logDir = os.environ.get('CAIRN_LOG_DIR') or None

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'maxTotalMb': maxTotalMb, 'console': console,
                    'level': getattr(logging, level.upper()), 'utc': utc})

    if logDir:
        Path(logDir).mkdir(parents=True, exist_ok=True)
    _configured = True


def _autoDetectName() -> str:
    """Walk the stack to the first frame outside this package. Returns e.g. 'cairn.core.tracking.TrackingController'"""

    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__
            if moduleName.startswith('cairnkit.logging'):
                continue
            if moduleName.startswith('importlib') or moduleName == '__main__':
                continue

            # Drop the 'cairnkit' package wrapper
            parts = moduleName.split('.')
            if parts and parts[0] == 'cairnkit':
                parts = parts[1:]

            className = None
            if current.f_locals:
                if 'self' in current.f_locals:
                    className = current.f_locals['self'].__class__.__name__
                elif 'cls' in current.f_locals:
                    className = current.f_locals['cls'].__name__

            hierarchy = '.'.join(parts) if parts else 'unknown'
            if className:
                hierarchy = f"{hierarchy}.{className}"
            return hierarchy

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields.
    Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    def __init__(self, fmt=None, datefmt=None, utc=False):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        ct = datetime.fromtimestamp(record.created, tz=tz.utc) if self.utc else datetime.fromtimestamp(record.created)
        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname
        fields = [f"{key}={value}" for key, value in record.__dict__.items()
                  if key not in _RESERVED and not key.startswith('_')]

        # Restore msg afterwards so other handlers see the original
        originalMsg = record.msg
        if fields:
            record.msg = f"{originalMsg} [{', '.join(fields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


class BudgetedRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotating handler that enforces the global disk budget after each rollover."""

    def doRollover(self):
        super().doRollover()
        _enforceDiskLimit()


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger, detecting its hierarchical name from the caller when omitted.

    Args:
        name: Logger name (auto-detected from call stack if None)
        separateFile: Write to '<name>.log' instead of the top-level app file

    Returns:
        logging.Logger whose level methods accept structured fields as keyword arguments
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not hasattr(logger, '_configuredByCairn'):
        logger.setLevel(_config['level'])

        if _config['logDir']:
            logFilename = f"{name}.log" if separateFile else f"{name.split('.')[0]}.log"
            logPath = str(Path(_config['logDir']) / logFilename)

            if logPath not in _fileHandlers:
                fileHandler = BudgetedRotatingFileHandler(logPath, maxBytes=_config['maxBytes'],
                                                          backupCount=_config['backupCount'], encoding='utf-8')
                fileHandler.setLevel(_config['level'])
                fileHandler.setFormatter(StructuredFormatter(
                    '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s', utc=_config['utc']))
                _fileHandlers[logPath] = fileHandler
            logger.addHandler(_fileHandlers[logPath])

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.setFormatter(StructuredFormatter('%(name)s - %(levelname)s - %(message)s',
                                                            utc=_config['utc']))
            logger.addHandler(consoleHandler)

        logger._configuredByCairn = True

    return _wrapLogger(logger)


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Replace the level methods so structured fields can be passed as keyword arguments.

    log.info("Marker created", lat=45.9) instead of log.info("Marker created", extra={'lat': 45.9})
    """
    if hasattr(logger, '_isWrapped'):
        return logger

    def wrap(original):
        def method(msg, *args, **kwargs):
            excInfo = kwargs.pop('exc_info', False)
            if kwargs:
                original(msg, *args, extra=kwargs, exc_info=excInfo)
            else:
                original(msg, *args, exc_info=excInfo)
        method.__doc__ = f"Log {original.__name__} message with structured fields."
        return method

    for level in ('debug', 'info', 'warning', 'error', 'critical'):
        setattr(logger, level, wrap(getattr(logger, level)))
    logger._isWrapped = True

    return logger


def _enforceDiskLimit():
    """Remove the oldest files in logDir until total usage fits maxTotalMb."""
    if not _config['logDir']:
        return

    logDir = Path(_config['logDir'])
    budget = _config['maxTotalMb'] * 1024 * 1024

    files = []
    totalSize = 0
    try:
        for filepath in logDir.rglob('*.log*'):
            if filepath.is_file():
                stat = filepath.stat()
                files.append((stat.st_mtime, stat.st_size, filepath))
                totalSize += stat.st_size
    except OSError:
        return

    if totalSize <= budget:
        return

    files.sort(key=lambda x: x[0])
    for _, size, filepath in files:
        if totalSize <= budget:
            break
        try:
            filepath.unlink()
            totalSize -= size
        except OSError:
            continue
