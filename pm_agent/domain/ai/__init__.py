"""AI domain services and provider abstractions."""

from pm_agent.domain.ai.circuit_breaker import CircuitBreaker, CircuitState
from pm_agent.domain.ai.factory import build_ai_service, build_model_pool
from pm_agent.domain.ai.pool import ModelBackend, ModelClientPool
from pm_agent.domain.ai.service import AIService

__all__ = [
    "AIService",
    "CircuitBreaker",
    "CircuitState",
    "ModelBackend",
    "ModelClientPool",
    "build_ai_service",
    "build_model_pool",
]
