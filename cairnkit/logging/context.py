"""
Logging context

Attaches service identity (serviceName, instanceId) to every record passing
through a handler, so log lines from several Cairn processes can be told apart.
"""

import logging
from typing import Optional
from contextvars import ContextVar

_serviceName: ContextVar[Optional[str]] = ContextVar('serviceName', default=None)
_instanceId: ContextVar[Optional[str]] = ContextVar('instanceId', default=None)


class ServiceContextFilter(logging.Filter):
    """Adds the current service context to each record."""

    def filter(self, record):
        serviceName = _serviceName.get()
        instanceId = _instanceId.get()
        if serviceName:
            record.serviceName = serviceName
        if instanceId:
            record.instanceId = instanceId
        return True


def setServiceContext(serviceName: str, instanceId: Optional[str] = None):
    _serviceName.set(serviceName)
    if instanceId:
        _instanceId.set(instanceId)


def getServiceContext() -> dict:
    return {'serviceName': _serviceName.get(), 'instanceId': _instanceId.get()}


def clearServiceContext():
    _serviceName.set(None)
    _instanceId.set(None)


def installServiceContextFilter(logger: logging.Logger):
    """
    Install the context filter on a logger's handlers.

    Filters on a logger only see records logged directly on it, and Cairn
    loggers do not propagate, so the filter goes on every handler instead.
    """
    for handler in logger.handlers:
        if not any(isinstance(f, ServiceContextFilter) for f in handler.filters):
            handler.addFilter(ServiceContextFilter())
