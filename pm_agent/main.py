import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pm_agent.api.ai import router as ai_router
from pm_agent.core.config import get_settings
from pm_agent.services.error_policy import build_http_error_payload, build_unexpected_error_payload
from pm_agent.services.runtime import build_ai_runtime


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = build_ai_runtime(settings)
    app.state.ai_runtime = runtime
    runtime.jobs.start_sweeper(settings.job_sweep_interval_sec, also=[runtime.cache.purge_expired])
    logger.info(
        "PM agent API starting (env=%s, backends=%s)",
        settings.env,
        runtime.ai_service.pool.available_names() or "none",
    )

    yield

    await runtime.jobs.aclose(grace_sec=settings.job_shutdown_grace_sec)
    logger.info("PM agent API shutting down")


app = FastAPI(
    title="PM Agent API",
    version="0.1.0",
    description="AI-assisted project analysis, chat and document-to-task extraction",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check(request: Request) -> dict[str, object]:
    runtime = request.app.state.ai_runtime
    return {
        "status": "ok",
        "env": settings.env,
        "circuit": runtime.ai_service.breaker.snapshot(),
        "backends": runtime.ai_service.pool.available_names(),
    }


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    trace_id = request.headers.get("x-trace-id") or uuid4().hex
    payload = build_http_error_payload(exc, trace_id)
    return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)


@app.exception_handler(Exception)
async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    trace_id = request.headers.get("x-trace-id") or uuid4().hex
    logger.error("Unhandled error (trace_id=%s)", trace_id, exc_info=exc)
    payload = build_unexpected_error_payload(trace_id)
    return JSONResponse(status_code=500, content=payload)


app.include_router(ai_router)
