"""Cleaning and validation of raw model output.

Model text is never trusted to be clean JSON. Every completion is cleaned,
parsed and checked against the expected shape for its task, and the outcome
is a tagged result: `Valid(value)` or `Invalid(reason, raw, cleaned)`.
Malformed output is a value here, not an exception.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, StrictInt, StrictStr, ValidationError


logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)

DEFAULT_TEAM = "Product"
DEFAULT_PRIORITY = "Medium"
_PRIORITY_ALIASES = {
    "critical": "High",
    "high": "High",
    "medium": "Medium",
    "low": "Low",
}


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str
    raw: str
    cleaned: str

    def as_dict(self) -> dict[str, str]:
        return {"error": self.reason, "raw": self.raw, "cleaned": self.cleaned}


ContractResult = Union[Valid[T], Invalid]


class TaskRef(BaseModel):
    id: StrictStr
    title: StrictStr


class Deadlines(BaseModel):
    overdue: list[TaskRef]
    dueSoon: list[TaskRef]
    onTrack: list[TaskRef]


class SuggestedAction(BaseModel):
    taskId: StrictStr | None
    action: StrictStr
    reason: StrictStr


class AIInsights(BaseModel):
    summary: StrictStr
    riskLevel: Literal["Low", "Medium", "High"]
    deadlines: Deadlines
    standupUpdate: StrictStr
    suggestedActions: list[SuggestedAction]


class ExtractedTask(BaseModel):
    id: StrictInt
    title: StrictStr
    description: StrictStr = ""
    status: Literal["todo"] = "todo"
    dueDate: StrictStr | None = None
    assignee: StrictStr | None = None
    team: StrictStr = DEFAULT_TEAM
    priority: Literal["Low", "Medium", "High"] = DEFAULT_PRIORITY
    dependencies: list[StrictInt] = []


class ExtractedTasksResult(BaseModel):
    tasks: list[ExtractedTask]


def clean_llm_text(text: str, *, allow_array: bool = False) -> str:
    """Strip fences and cut the JSON value out of surrounding chatter.

    The object span runs from the first `{` to the last `}`. With
    `allow_array`, the `[...]` span competes with it: whichever span parses
    and starts earlier wins, so a bare task array is kept whole while
    bracketed commentary in front of an object is dropped.
    """
    cleaned = _FENCE_PATTERN.sub("", text or "").strip()

    object_span = _span(cleaned, "{", "}")
    if not allow_array:
        return object_span[1] if object_span else cleaned

    array_span = _span(cleaned, "[", "]")
    parsed = [span for span in (object_span, array_span) if span and _is_json(span[1])]
    if parsed:
        return min(parsed)[1]
    for span in (object_span, array_span):
        if span:
            return span[1]
    return cleaned


def _span(text: str, opener: str, closer: str) -> tuple[int, str] | None:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return start, text[start : end + 1]


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _parse(raw: str, *, allow_array: bool, label: str) -> tuple[Any, Invalid | None, str]:
    cleaned = clean_llm_text(raw, allow_array=allow_array)
    try:
        return json.loads(cleaned), None, cleaned
    except (json.JSONDecodeError, ValueError):
        logger.warning("%s output is not parseable JSON", label)
        return None, Invalid(reason=f"Failed to parse {label} JSON", raw=raw, cleaned=cleaned), cleaned


def validate_insights(raw: str) -> ContractResult[AIInsights]:
    parsed, failure, cleaned = _parse(raw, allow_array=False, label="analysis")
    if failure is not None:
        return failure
    try:
        return Valid(AIInsights.model_validate(parsed))
    except ValidationError as exc:
        logger.warning("analysis output failed validation: %s", _summarize(exc))
        return Invalid(
            reason=f"AI output validation failed: {_summarize(exc)}",
            raw=raw,
            cleaned=cleaned,
        )


def validate_extraction(raw: str) -> ContractResult[ExtractedTasksResult]:
    parsed, failure, cleaned = _parse(raw, allow_array=True, label="doc-to-task")
    if failure is not None:
        return failure

    wrapped = {"tasks": parsed} if isinstance(parsed, list) else parsed
    coerced, problem = coerce_extracted_tasks(wrapped)
    if problem is None:
        try:
            return Valid(ExtractedTasksResult.model_validate(coerced))
        except ValidationError as exc:
            problem = _summarize(exc)

    logger.warning("doc-to-task output failed validation: %s", problem)
    return Invalid(
        reason=f"Doc-to-task AI output validation failed: {problem}",
        raw=raw,
        cleaned=cleaned,
    )


def coerce_extracted_tasks(payload: Any) -> tuple[dict[str, Any] | None, str | None]:
    """Repair near-miss extraction payloads before strict validation.

    Only a payload without a task list, a non-object entry or an entry with
    no title is rejected here.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("tasks"), list):
        return None, "tasks_array_missing"

    tasks: list[dict[str, Any]] = []
    for position, entry in enumerate(payload["tasks"], start=1):
        if not isinstance(entry, dict):
            return None, f"task_{position}_not_object"
        title = entry.get("title")
        if not isinstance(title, str) or not title.strip():
            return None, f"task_{position}_title_missing"

        task_id = _coerce_int(entry.get("id"))
        dependencies = entry.get("dependencies")
        if not isinstance(dependencies, list):
            dependencies = []

        tasks.append(
            {
                "id": task_id if task_id is not None else position,
                "title": title.strip(),
                "description": _as_str(entry.get("description"), ""),
                "status": "todo",
                "dueDate": _as_str(entry.get("dueDate"), None),
                "assignee": _as_str(entry.get("assignee"), None),
                "team": _as_str(entry.get("team"), None) or DEFAULT_TEAM,
                "priority": _normalize_priority(entry.get("priority")),
                "dependencies": [
                    dep for dep in (_coerce_int(item) for item in dependencies) if dep is not None
                ],
            }
        )
    return {"tasks": tasks}, None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_str(value: Any, fallback: str | None) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _normalize_priority(value: Any) -> str:
    if isinstance(value, str):
        return _PRIORITY_ALIASES.get(value.strip().lower(), DEFAULT_PRIORITY)
    return DEFAULT_PRIORITY


def _summarize(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors()[:5]:
        location = ".".join(str(part) for part in error.get("loc", ())) or "root"
        problems.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(problems)
