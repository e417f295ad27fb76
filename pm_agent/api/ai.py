import logging
from functools import partial
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from pm_agent.domain.ai.contracts import Invalid
from pm_agent.domain.ai.errors import AIServiceError, ContractValidationError
from pm_agent.domain.ai.prompts import DEGRADED_CHAT_ANSWER
from pm_agent.services.error_policy import (
    ai_failure_http_exception,
    build_structured_error_detail,
    classify_ai_failure,
)
from pm_agent.services.project_ai import (
    EXTRACTION_JOB_TYPE,
    AnalyzeRequest,
    ChatRequest,
    DocumentRequest,
    analyze_project,
    chat_over_project,
    extract_tasks_from_text,
    run_extraction_job,
)
from pm_agent.services.runtime import AIRuntime


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


def get_ai_runtime(request: Request) -> AIRuntime:
    return request.app.state.ai_runtime


def _require_matching_project(project_id: str, payload_project_id: str) -> None:
    if project_id != payload_project_id:
        raise HTTPException(
            status_code=422,
            detail=build_structured_error_detail(
                error_code="schema_mismatch",
                message="project id in path and body differ",
                detail=f"project_id_mismatch:{project_id}:{payload_project_id}",
            ),
        )


@router.post("/analyze/{project_id}")
async def analyze(
    project_id: str,
    payload: AnalyzeRequest,
    runtime: AIRuntime = Depends(get_ai_runtime),
) -> dict[str, Any]:
    _require_matching_project(project_id, payload.project.id)
    try:
        result = await analyze_project(payload, ai_service=runtime.ai_service, cache=runtime.cache)
    except AIServiceError as exc:
        raise ai_failure_http_exception("analyze", exc) from exc

    if isinstance(result, Invalid):
        raise ai_failure_http_exception("analyze", ContractValidationError(result))
    return result.value.model_dump()


@router.post("/chat/{project_id}")
async def chat(
    project_id: str,
    payload: ChatRequest,
    runtime: AIRuntime = Depends(get_ai_runtime),
) -> dict[str, Any]:
    _require_matching_project(project_id, payload.project.id)
    try:
        answer = await chat_over_project(
            payload.project,
            payload.tasks,
            payload.question,
            payload.history,
            ai_service=runtime.ai_service,
        )
    except AIServiceError as exc:
        code, _, retryable = classify_ai_failure(exc)
        logger.warning("chat for project %s degraded: %s", project_id, exc)
        return {
            "answer": DEGRADED_CHAT_ANSWER,
            "degraded": True,
            "error_code": code,
            "retryable": retryable,
        }

    return {"answer": answer, "degraded": False}


@router.post("/doc-to-tasks")
async def doc_to_tasks(
    payload: DocumentRequest,
    runtime: AIRuntime = Depends(get_ai_runtime),
) -> dict[str, Any]:
    try:
        result = await extract_tasks_from_text(
            payload.document, ai_service=runtime.ai_service, cache=runtime.cache
        )
    except AIServiceError as exc:
        raise ai_failure_http_exception("doc_to_tasks", exc) from exc

    if isinstance(result, Invalid):
        raise ai_failure_http_exception("doc_to_tasks", ContractValidationError(result))
    return result.value.model_dump()


@router.post("/jobs/doc-to-tasks", status_code=202)
async def submit_doc_to_tasks_job(
    payload: DocumentRequest,
    runtime: AIRuntime = Depends(get_ai_runtime),
) -> dict[str, Any]:
    processor = partial(run_extraction_job, ai_service=runtime.ai_service, cache=runtime.cache)
    job_id = runtime.jobs.submit(EXTRACTION_JOB_TYPE, payload.document, processor)
    return {"jobId": job_id, "status": "pending"}


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    runtime: AIRuntime = Depends(get_ai_runtime),
) -> dict[str, Any]:
    job = runtime.jobs.get_status(job_id)
    if job is None:
        raise HTTPException(
            status_code=404,
            detail=build_structured_error_detail(
                error_code="not_found",
                message="Job not found or expired",
                detail=f"job_not_found:{job_id}",
            ),
        )
    return job.to_dict()
