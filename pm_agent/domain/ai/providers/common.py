import json
from typing import Any
from urllib import request

from pm_agent.domain.ai.errors import BackendCallError


def post_json(
    endpoint: str,
    payload: dict[str, Any],
    *,
    label: str,
    timeout_sec: float,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    req = request.Request(
        endpoint,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **(headers or {})},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout_sec) as response:
            body = response.read().decode("utf-8")
    except Exception as exc:  # pragma: no cover - network boundary
        raise BackendCallError(f"{label}_request_failed:{exc}") from exc

    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as exc:
        raise BackendCallError(f"{label}_response_not_json") from exc
    if not isinstance(decoded, dict):
        raise BackendCallError(f"{label}_response_not_object")
    return decoded
