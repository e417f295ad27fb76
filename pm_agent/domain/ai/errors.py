from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pm_agent.domain.ai.contracts import Invalid


class AIServiceError(RuntimeError):
    """Base class for every failure the AI layer surfaces to callers."""


class BackendCallError(AIServiceError):
    """A constructed backend raised while being invoked."""


class AllBackendsExhaustedError(AIServiceError):
    def __init__(self, attempts: list[tuple[str, str]] | None = None) -> None:
        self.attempts = list(attempts or [])
        if self.attempts:
            tried = ", ".join(f"{name}={reason}" for name, reason in self.attempts)
        else:
            tried = "no_backends_configured"
        super().__init__(f"ai_service_unavailable:{tried}")


class CircuitOpenError(AIServiceError):
    def __init__(self, retry_after_sec: float) -> None:
        self.retry_after_sec = max(0.0, retry_after_sec)
        super().__init__("Circuit breaker is OPEN: AI service is temporarily unavailable.")


class AIBackpressureError(AIServiceError):
    def __init__(self) -> None:
        super().__init__("ai_backpressure_busy")


class ContractValidationError(AIServiceError):
    def __init__(self, invalid: Invalid) -> None:
        self.invalid = invalid
        super().__init__(invalid.reason)
