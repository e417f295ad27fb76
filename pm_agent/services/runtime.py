from dataclasses import dataclass

from pm_agent.core.config import Settings
from pm_agent.domain.ai import AIService, build_ai_service
from pm_agent.services.cache import ResponseCache
from pm_agent.services.jobs import JobRunner


@dataclass
class AIRuntime:
    """Process-lifetime AI collaborators, built once per application."""

    ai_service: AIService
    cache: ResponseCache
    jobs: JobRunner


def build_ai_runtime(settings: Settings) -> AIRuntime:
    return AIRuntime(
        ai_service=build_ai_service(settings),
        cache=ResponseCache(default_ttl_sec=settings.ai_cache_ttl_sec),
        jobs=JobRunner(retention_sec=settings.job_retention_sec),
    )
