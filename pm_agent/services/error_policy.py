from typing import Any

from fastapi import HTTPException

from pm_agent.domain.ai.errors import (
    AIBackpressureError,
    AllBackendsExhaustedError,
    CircuitOpenError,
    ContractValidationError,
)


KNOWN_ERROR_CODES = {
    "schema_mismatch",
    "rate_limited",
    "circuit_open",
    "provider_unavailable",
    "config_error",
    "not_found",
    "unknown",
}

RETRYABLE_ERROR_CODES = {
    "rate_limited",
    "circuit_open",
    "provider_unavailable",
}

_DEFAULT_MESSAGES = {
    "schema_mismatch": "AI response did not match the expected shape",
    "rate_limited": "AI service is busy, retry shortly",
    "circuit_open": "AI service is temporarily unavailable",
    "provider_unavailable": "AI service is temporarily unavailable",
    "config_error": "AI service configuration error",
    "not_found": "Resource not found",
    "unknown": "Request failed",
}


def normalize_error_code(value: Any) -> str:
    raw = str(value or "").strip().lower()
    if raw in KNOWN_ERROR_CODES:
        return raw
    return "unknown"


def classify_ai_failure(exc: BaseException) -> tuple[str, int, bool]:
    if isinstance(exc, CircuitOpenError):
        return ("circuit_open", 503, True)
    if isinstance(exc, AllBackendsExhaustedError):
        if not exc.attempts:
            # Nothing was tried: no backend has credentials.
            return ("config_error", 503, False)
        return ("provider_unavailable", 503, True)
    if isinstance(exc, AIBackpressureError):
        return ("rate_limited", 429, True)
    if isinstance(exc, ContractValidationError):
        return ("schema_mismatch", 422, False)
    return ("unknown", 502, False)


def format_pipeline_error_detail(pipeline: str, code: str, reason: str) -> str:
    reason_text = " ".join(str(reason or "").split())[:260] or "ai_provider_failed"
    return f"{pipeline}_failed:{code}:{reason_text}"


def build_structured_error_detail(
    *,
    error_code: str,
    message: str | None = None,
    retryable: bool | None = None,
    detail: Any = None,
    diagnostics: dict[str, Any] | None = None,
) -> dict[str, Any]:
    code = normalize_error_code(error_code)
    message_text = " ".join(str(message or "").split()).strip() or _DEFAULT_MESSAGES[code]
    if retryable is None:
        retryable = code in RETRYABLE_ERROR_CODES

    detail_text = " ".join(str(detail or "").split()).strip() or message_text

    payload: dict[str, Any] = {
        "error_code": code,
        "message": message_text[:260],
        "retryable": bool(retryable),
        "detail": detail_text,
    }
    if diagnostics:
        payload["diagnostics"] = diagnostics
    return payload


def ai_failure_http_exception(pipeline: str, exc: BaseException) -> HTTPException:
    code, status_code, retryable = classify_ai_failure(exc)
    diagnostics = None
    if isinstance(exc, ContractValidationError):
        diagnostics = {"raw": exc.invalid.raw, "cleaned": exc.invalid.cleaned}

    headers = None
    if isinstance(exc, CircuitOpenError) and exc.retry_after_sec > 0:
        headers = {"Retry-After": str(max(1, round(exc.retry_after_sec)))}

    return HTTPException(
        status_code=status_code,
        detail=build_structured_error_detail(
            error_code=code,
            message=_DEFAULT_MESSAGES[code] if code != "schema_mismatch" else str(exc),
            retryable=retryable,
            detail=format_pipeline_error_detail(pipeline, code, str(exc)),
            diagnostics=diagnostics,
        ),
        headers=headers,
    )


def _payload_from_detail_text(status_code: int, detail: Any) -> dict[str, Any]:
    code = "not_found" if status_code == 404 else "unknown"
    text = " ".join(str(detail or "").split()).strip()
    message = text[:260] or _DEFAULT_MESSAGES[code]
    return {
        "error_code": code,
        "message": message,
        "retryable": False,
        "detail": text or message,
    }


def _payload_from_detail_dict(detail: dict[str, Any]) -> dict[str, Any]:
    code = normalize_error_code(detail.get("error_code"))
    message = " ".join(str(detail.get("message") or "").split()).strip() or _DEFAULT_MESSAGES[code]
    retryable = bool(detail["retryable"]) if "retryable" in detail else code in RETRYABLE_ERROR_CODES
    payload: dict[str, Any] = {
        "error_code": code,
        "message": message[:260],
        "retryable": retryable,
        "detail": str(detail.get("detail") or "").strip() or message,
    }
    if isinstance(detail.get("diagnostics"), dict):
        payload["diagnostics"] = detail["diagnostics"]
    return payload


def build_http_error_payload(exc: HTTPException, trace_id: str) -> dict[str, Any]:
    if isinstance(exc.detail, dict):
        payload = _payload_from_detail_dict(exc.detail)
    else:
        payload = _payload_from_detail_text(exc.status_code, exc.detail)

    payload["trace_id"] = trace_id
    return payload


def build_unexpected_error_payload(trace_id: str) -> dict[str, Any]:
    return {
        "error_code": "unknown",
        "message": "Unexpected server error",
        "retryable": False,
        "trace_id": trace_id,
        "detail": "unexpected_server_error",
    }
