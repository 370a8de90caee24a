# ------------------------------ IMPORTS ------------------------------
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, AsyncIterator

from core.config.settings import settings, ConcurrencyConfig
from core.exceptions import SessionBusy

logger = logging.getLogger(__name__)

# ------------------------------ RATE LIMITER ------------------------------

class RateLimiter:
    """
    Async token bucket.

    Allows ``max_calls`` operations per ``period`` seconds, with bursts up to
    ``max_calls``. Callers waiting for a token sleep until the next refill
    instead of polling.
    """

    def __init__(self, max_calls: int, period: float):
        if max_calls < 1 or period <= 0:
            raise ValueError("max_calls must be >= 1 and period > 0")

        self.max_calls = max_calls
        self.period = period
        self._tokens = float(max_calls)
        self._rate = max_calls / period
        self._last_refill: Optional[float] = None
        self._lock = asyncio.Lock()

    def _refill(self, now: float) -> None:
        if self._last_refill is None:
            self._last_refill = now
            return

        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.max_calls), self._tokens + elapsed * self._rate)
            self._last_refill = now

    async def acquire(self) -> float:
        """Take one token, sleeping until one is available. Returns seconds waited."""
        loop = asyncio.get_running_loop()
        waited = 0.0

        async with self._lock:
            while True:
                self._refill(loop.time())
                if self._tokens >= 1:
                    self._tokens -= 1
                    return waited

                wait_time = (1 - self._tokens) / self._rate
                logger.debug(f"Rate limit reached, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                waited += wait_time

# ------------------------------ CONCURRENCY CONTROLLER ------------------------------

class ConcurrencyController:
    """Per-session mutual exclusion plus a global ceiling on browser activity."""

    def __init__(self, config: ConcurrencyConfig = None):
        self.config = config or settings.concurrency
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global = asyncio.Semaphore(self.config.max_concurrent_operations)
        self.massive_limiter = RateLimiter(self.config.massive_rate_limit, self.config.massive_rate_period)

    def _lock_for(self, credential_key: str) -> asyncio.Lock:
        lock = self._locks.get(credential_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[credential_key] = lock
        return lock

    def is_busy(self, credential_key: str) -> bool:
        lock = self._locks.get(credential_key)
        return bool(lock and lock.locked())

    def forget(self, credential_key: str) -> None:
        """Drop the lock of a closed session unless someone still holds it."""
        lock = self._locks.get(credential_key)
        if lock is not None and not lock.locked():
            del self._locks[credential_key]

    async def drain(self, credential_keys: List[str], timeout: Optional[float] = None) -> List[str]:
        """
        Wait until every listed session has finished its current operation.

        Callers already queued on a session's lock run before the drain gets
        its turn. Returns the keys that were still busy when the timeout hit.
        """
        timeout = self.config.shutdown_drain_timeout if timeout is None else timeout

        async def wait_idle(credential_key: str) -> bool:
            lock = self._locks.get(credential_key)
            if lock is None:
                return True
            try:
                await asyncio.wait_for(lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                return False
            lock.release()
            return True

        results = await asyncio.gather(*(wait_idle(key) for key in credential_keys))
        busy = [key for key, idle in zip(credential_keys, results) if not idle]
        if busy:
            logger.warning(f"{len(busy)} session(s) still busy after {timeout}s drain")
        return busy

    @asynccontextmanager
    async def session_slot(self, credential_key: str, operation: str = "operation", timeout: Optional[float] = None) -> AsyncIterator[None]:
        """Hold the session's lock and one global slot for the duration of the block."""
        lock = self._lock_for(credential_key)
        timeout = self.config.session_lock_timeout if timeout is None else timeout

        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Session busy, could not start {operation} within {timeout}s")
            raise SessionBusy(f"Session is busy with another operation; {operation} not started") from e

        try:
            async with self._global:
                yield
        finally:
            lock.release()

    @asynccontextmanager
    async def massive_slot(self, credential_key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """Like ``session_slot`` but also subject to the batch submission rate ceiling."""
        waited = await self.massive_limiter.acquire()
        if waited:
            logger.info(f"Massive submission delayed {waited:.2f}s by rate limit")

        async with self.session_slot(credential_key, "massive registration", timeout):
            yield

# ------------------------------ END OF FILE ------------------------------
