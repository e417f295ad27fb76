import hashlib
import json
import logging
from typing import Any, Sequence

from pydantic import BaseModel, Field

from pm_agent.domain.ai.contracts import (
    AIInsights,
    ContractResult,
    ExtractedTasksResult,
    Invalid,
    Valid,
    validate_extraction,
    validate_insights,
)
from pm_agent.domain.ai.errors import ContractValidationError
from pm_agent.domain.ai.prompts import (
    HistoryMessage,
    ProjectSnapshot,
    TaskSnapshot,
    build_analysis_messages,
    build_chat_messages,
    build_extraction_messages,
)
from pm_agent.domain.ai.service import AIService
from pm_agent.services.cache import ResponseCache


logger = logging.getLogger(__name__)

EXTRACTION_JOB_TYPE = "doc_to_tasks"


class AnalyzeRequest(BaseModel):
    project: ProjectSnapshot
    tasks: list[TaskSnapshot] = Field(default_factory=list)


class ChatRequest(BaseModel):
    project: ProjectSnapshot
    tasks: list[TaskSnapshot] = Field(default_factory=list)
    question: str = Field(min_length=1)
    history: list[HistoryMessage] = Field(default_factory=list)


class DocumentRequest(BaseModel):
    document: str = Field(min_length=1)


def _digest(value: Any) -> str:
    encoded = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:24]


def analysis_cache_key(project: ProjectSnapshot, tasks: Sequence[TaskSnapshot]) -> str:
    fingerprint = {"name": project.name, "tasks": [task.model_dump() for task in tasks]}
    return f"analysis:{project.id}:{_digest(fingerprint)}"


def extraction_cache_key(document: str) -> str:
    return f"extraction:{_digest(document.strip())}"


async def analyze_project(
    payload: AnalyzeRequest,
    *,
    ai_service: AIService,
    cache: ResponseCache,
) -> ContractResult[AIInsights]:
    key = analysis_cache_key(payload.project, payload.tasks)
    cached = cache.get(key)
    if cached is not None:
        logger.debug("analysis cache hit for project %s", payload.project.id)
        return Valid(cached)

    raw = await ai_service.complete(build_analysis_messages(payload.project, payload.tasks))
    result = validate_insights(raw)
    if isinstance(result, Valid):
        cache.set(key, result.value)
    return result


async def chat_over_project(
    project: ProjectSnapshot,
    tasks: Sequence[TaskSnapshot],
    question: str,
    history: Sequence[HistoryMessage] = (),
    *,
    ai_service: AIService,
) -> str:
    raw = await ai_service.complete(build_chat_messages(project, tasks, question, history))
    return raw.strip()


async def extract_tasks_from_text(
    document: str,
    *,
    ai_service: AIService,
    cache: ResponseCache,
) -> ContractResult[ExtractedTasksResult]:
    key = extraction_cache_key(document)
    cached = cache.get(key)
    if cached is not None:
        return Valid(cached)

    raw = await ai_service.complete(build_extraction_messages(document))
    result = validate_extraction(raw)
    if isinstance(result, Valid):
        cache.set(key, result.value)
    return result


async def run_extraction_job(
    document: str,
    *,
    ai_service: AIService,
    cache: ResponseCache,
) -> dict[str, Any]:
    """Job processor body: a contract failure fails the job instead of completing it."""
    result = await extract_tasks_from_text(document, ai_service=ai_service, cache=cache)
    if isinstance(result, Invalid):
        raise ContractValidationError(result)
    return result.value.model_dump()
