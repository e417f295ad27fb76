from functools import partial

from pm_agent.core.config import Settings
from pm_agent.domain.ai.circuit_breaker import CircuitBreaker
from pm_agent.domain.ai.pool import ModelBackend, ModelClientPool
from pm_agent.domain.ai.providers.base import CompletionProvider
from pm_agent.domain.ai.providers.gemini import GeminiProvider
from pm_agent.domain.ai.providers.openai import OpenAIProvider
from pm_agent.domain.ai.service import AIService


def build_ai_service(settings: Settings) -> AIService:
    return AIService(
        pool=build_model_pool(settings),
        breaker=CircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown_sec=settings.circuit_cooldown_sec,
        ),
        attempt_timeout_sec=settings.ai_request_timeout_sec or None,
        max_concurrency=settings.ai_max_concurrency,
        acquire_timeout_ms=settings.ai_backpressure_acquire_timeout_ms,
    )


def build_model_pool(settings: Settings) -> ModelClientPool:
    slots = [(settings.ai_primary_provider, settings.ai_model_override)]
    if settings.ai_fallback_provider != "none":
        slots.append((settings.ai_fallback_provider, ""))

    return ModelClientPool(
        [
            ModelBackend.construct(provider, partial(build_provider, settings, provider, model_override))
            for provider, model_override in slots
        ]
    )


def build_provider(settings: Settings, provider: str, model_override: str = "") -> CompletionProvider:
    timeout_sec = settings.ai_request_timeout_sec or 30

    if provider == "groq":
        return OpenAIProvider(
            api_key=settings.groq_api_key,
            model=model_override or settings.groq_model,
            base_url=settings.groq_base_url,
            timeout_sec=timeout_sec,
            name="groq",
        )

    if provider == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model=model_override or settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_sec=timeout_sec,
        )

    if provider == "gemini":
        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model=model_override or settings.gemini_model,
            timeout_sec=timeout_sec,
        )

    raise ValueError(f"unsupported_ai_provider:{provider}")
