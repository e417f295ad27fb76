import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from pm_agent.domain.ai.circuit_breaker import CircuitBreaker
from pm_agent.domain.ai.errors import AIBackpressureError, AllBackendsExhaustedError
from pm_agent.domain.ai.pool import ModelClientPool
from pm_agent.domain.ai.providers.base import ChatMessage


logger = logging.getLogger(__name__)


class AIService:
    """Resilient completion invoker.

    Backends are tried strictly in pool order, one at a time. Individual
    backend failures are logged and trigger the next backend; only an
    exhausted pool is reported to the circuit breaker, so one request counts
    as at most one breaker failure.
    """

    def __init__(
        self,
        *,
        pool: ModelClientPool,
        breaker: CircuitBreaker | None = None,
        attempt_timeout_sec: float | None = None,
        max_concurrency: int = 4,
        acquire_timeout_ms: int = 0,
    ) -> None:
        self.pool = pool
        self.breaker = breaker or CircuitBreaker()
        self._attempt_timeout_sec = attempt_timeout_sec if attempt_timeout_sec else None
        self._semaphore = asyncio.BoundedSemaphore(max(1, int(max_concurrency)))
        # 0 queues callers until a slot frees up.
        self._acquire_timeout_sec = int(acquire_timeout_ms) / 1000 if acquire_timeout_ms else None

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        async with self._admission():
            return await self.breaker.execute(lambda: self._complete_with_fallback(messages))

    @asynccontextmanager
    async def _admission(self) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._acquire_timeout_sec):
                await self._semaphore.acquire()
        except TimeoutError as exc:
            raise AIBackpressureError() from exc
        try:
            yield
        finally:
            self._semaphore.release()

    async def _complete_with_fallback(self, messages: Sequence[ChatMessage]) -> str:
        attempts: list[tuple[str, str]] = []
        for backend in self.pool.available():
            try:
                text = await asyncio.wait_for(
                    backend.client.complete(messages),
                    timeout=self._attempt_timeout_sec,
                )
            except asyncio.TimeoutError:
                reason = f"timeout_after_{self._attempt_timeout_sec}s"
            except Exception as exc:
                reason = str(exc).strip()[:300] or type(exc).__name__
            else:
                if isinstance(text, str) and text.strip():
                    return text
                reason = "empty_completion"

            attempts.append((backend.name, reason))
            logger.warning("AI backend %s failed, trying next: %s", backend.name, reason)

        raise AllBackendsExhaustedError(attempts)
