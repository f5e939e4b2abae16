"""
Geolocation Tracker

Wraps a PositionSource behind a start/stop subscription API:

- startTracking(onSample, onError): one active subscription at a time; starting
  again supersedes the previous one
- samples without finite lat/lon are dropped, never reported as errors
- the first failure is delivered once to onError and ends the subscription
- stopTracking() cancels synchronously and is a no-op when idle

Options favor fast fixes: no high-accuracy requirement, a bounded wait for the
first valid fix, and acceptance of a recently cached fix when (re)starting.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional

from cairnkit.geolocation.errors import (
    PositionError, PositionSourceUnavailable, PositionTimeout, PositionUnavailable
)
from cairnkit.geolocation.positionSource import PositionSample, PositionSource
from cairnkit.logging import getLogger


SampleCallback = Callable[[PositionSample], None]
ErrorCallback = Callable[[PositionError], None]


@dataclass
class TrackingOptions:
    highAccuracy: bool = False      # Fast, low-power fixes over maximum precision
    timeout: float = 10.0           # Seconds to wait for the first valid fix
    maximumAge: float = 5.0         # Seconds a cached fix stays acceptable on (re)start


class _Subscription:
    """One startTracking() call. Inactive subscriptions never invoke their callbacks again."""

    def __init__(self, onSample: SampleCallback, onError: ErrorCallback):
        self.onSample = onSample
        self.onError = onError
        self.task: Optional[asyncio.Task] = None
        self.active = True
        self.samplesDelivered = 0
        self.samplesDropped = 0


class GeolocationTracker:

    def __init__(self, source: Optional[PositionSource], options: Optional[TrackingOptions] = None):
        self.source = source
        self.options = options or TrackingOptions()
        self.log = getLogger()
        self._subscription: Optional[_Subscription] = None
        self._waiters: List[asyncio.Future] = []

    @property
    def isSupported(self) -> bool:
        return self.source is not None

    @property
    def isTracking(self) -> bool:
        return self._subscription is not None

    def startTracking(self, onSample: SampleCallback, onError: ErrorCallback) -> None:
        """Begin continuous sampling. Must be called from the event loop."""
        self.stopTracking()

        if self.source is None:
            self.log.warning("No position source configured")
            onError(PositionSourceUnavailable())
            return

        subscription = _Subscription(onSample, onError)
        self._subscription = subscription
        subscription.task = asyncio.get_running_loop().create_task(self._run(subscription), name='geolocationWatch')
        self.log.info("Tracking started", source=self.source.getKind(), highAccuracy=self.options.highAccuracy)

    def stopTracking(self) -> None:
        subscription = self._subscription
        if subscription is None:
            return

        self._subscription = None
        subscription.active = False
        if subscription.task is not None and not subscription.task.done():
            subscription.task.cancel()
        self._cancelWaiters()
        self.log.info("Tracking stopped", delivered=subscription.samplesDelivered, dropped=subscription.samplesDropped)

    async def getCurrentPosition(self) -> PositionSample:
        """
        One-shot fix within options.timeout.

        While tracking, resolves with the next valid sample of the running
        subscription instead of opening the device a second time.
        """
        if self.source is None:
            raise PositionSourceUnavailable()

        if self._subscription is not None:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                return await asyncio.wait_for(waiter, self.options.timeout)
            except asyncio.TimeoutError:
                raise PositionTimeout() from None
            except asyncio.CancelledError:
                if waiter.cancelled():
                    raise PositionUnavailable("Tracking stopped before a fix arrived") from None
                raise
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

        iterator = self.source.watch(self.options.highAccuracy).__aiter__()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.options.timeout
        try:
            while True:
                sample = await asyncio.wait_for(iterator.__anext__(), max(0.0, deadline - loop.time()))
                if sample.isValid():
                    return sample
        except asyncio.TimeoutError:
            raise PositionTimeout() from None
        except StopAsyncIteration:
            raise PositionUnavailable("Position stream ended before a fix arrived") from None
        except OSError as e:
            raise PositionUnavailable(str(e)) from e
        finally:
            await iterator.aclose()

    async def _run(self, subscription: _Subscription) -> None:
        iterator = None
        try:
            haveFix = False
            cached = self.source.cachedSample(self.options.maximumAge)
            if cached is not None:
                haveFix = self._deliver(subscription, cached)

            iterator = self.source.watch(self.options.highAccuracy).__aiter__()
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.options.timeout

            while subscription.active:
                nextSample = iterator.__anext__()
                if haveFix:
                    sample = await nextSample
                else:
                    sample = await asyncio.wait_for(nextSample, max(0.0, deadline - loop.time()))
                if self._deliver(subscription, sample):
                    haveFix = True

        except asyncio.TimeoutError:
            self._fail(subscription, PositionTimeout())
        except StopAsyncIteration:
            self._fail(subscription, PositionUnavailable("Position stream ended"))
        except PositionError as e:
            self._fail(subscription, e)
        except OSError as e:
            self._fail(subscription, PositionUnavailable(str(e)))
        except Exception as e:
            self.log.error(f"Position source failed: {e}", exc_info=True)
            self._fail(subscription, PositionUnavailable(str(e)))
        finally:
            if iterator is not None:
                await iterator.aclose()

    def _deliver(self, subscription: _Subscription, sample: PositionSample) -> bool:
        """Hand a sample to the subscriber. Returns False when it was dropped"""
        if not subscription.active:
            return False

        if not sample.isValid():
            subscription.samplesDropped += 1
            self.log.debug("Dropped malformed sample", lat=sample.lat, lon=sample.lon)
            return False

        subscription.samplesDelivered += 1
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(sample)

        try:
            subscription.onSample(sample)
        except Exception as e:
            self.log.error(f"Sample callback failed: {e}", exc_info=True)
        return True

    def _fail(self, subscription: _Subscription, error: PositionError) -> None:
        if not subscription.active:
            return

        subscription.active = False
        if self._subscription is subscription:
            self._subscription = None
        self._cancelWaiters()
        self.log.warning("Tracking failed", errorKind=error.kind.value, error=error.message)
        subscription.onError(error)

    def _cancelWaiters(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.cancel()
