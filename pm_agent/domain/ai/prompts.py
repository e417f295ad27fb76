from typing import Any, Sequence

from pydantic import BaseModel, Field, field_validator

from pm_agent.domain.ai.providers.base import ChatMessage


ANALYZE_PROMPT = """You are a senior project management AI.

You receive:
- A project name
- A list of tasks with id, title, status, assignee, dueDate, and dependencies.

Statuses are: todo, in_progress, done, blocked.

Your job:
1) Summarize the current project status in 3-5 sentences.
2) Compute a riskLevel: "Low", "Medium", or "High".
   - High if many tasks are overdue or blocked, or critical dependencies are not done.
3) Identify deadlines:
   - overdue: tasks past dueDate and not done.
   - dueSoon: tasks due in the next 3 days.
   - onTrack: tasks not overdue and not due soon.
4) Generate a daily stand-up style update (Yesterday / Today / Blockers) as one paragraph.
5) Suggest 3-5 concrete next actions.

Return ONLY valid JSON with these top-level keys:
- summary (string)
- riskLevel (string: "Low" | "Medium" | "High")
- deadlines (object with arrays: overdue, dueSoon, onTrack; each item has string id and string title)
- standupUpdate (string)
- suggestedActions (array of objects with: taskId (string or null), action (string), reason (string))"""

CHAT_PROMPT = """You are a project management assistant.

You know:
Project: {project_name}
{context_block}
Tasks:
{tasks_block}

Answer the user's question using ONLY this information.
If something is not in the data, say you don't know.
Keep answers short and actionable."""

DOC_TO_TASKS_PROMPT = """You turn product documents (PRDs, specs, meeting notes) into an actionable task list.

Rules:
- Extract every concrete piece of work as one task.
- Number tasks with integer ids starting at 1.
- dependencies lists the integer ids of tasks that must finish first.
- dueDate is an ISO date when the document states one, otherwise null.
- team is one of: Marketing, Development, Design, Product, Operations.
- priority is one of: Low, Medium, High.

Return ONLY valid JSON shaped like:
{"tasks": [{"id": 1, "title": "string", "description": "string", "status": "todo",
"dueDate": null, "assignee": null, "team": "Development", "priority": "Medium",
"dependencies": []}]}"""

DEGRADED_CHAT_ANSWER = "I'm sorry, the AI is currently unavailable. Please try again later."

CHAT_HISTORY_LIMIT = 10
CONTEXT_CHAR_LIMIT = 6000
DOCUMENT_CHAR_LIMIT = 24000


class ProjectSnapshot(BaseModel):
    id: str
    name: str
    context: str | None = None


class TaskSnapshot(BaseModel):
    id: str
    title: str
    status: str = "todo"
    dueDate: str | None = None
    assignee: str | None = None
    priority: str | None = None
    dependencies: list[str] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> str:
        # Stored statuses look like "To Do" / "In Progress"; prompts use todo / in_progress.
        text = "_".join(str(value or "todo").strip().lower().split())
        return "todo" if text in {"to_do", ""} else text


class HistoryMessage(BaseModel):
    role: str
    content: str


def build_tasks_block(tasks: Sequence[TaskSnapshot]) -> str:
    if not tasks:
        return "No tasks."
    return "\n".join(
        f'- [{task.status}] ({task.id}) "{task.title}" '
        f"assignee={task.assignee or 'unassigned'} "
        f"due={task.dueDate or 'none'} "
        f"deps={','.join(task.dependencies) if task.dependencies else 'none'}"
        for task in tasks
    )


def build_analysis_messages(project: ProjectSnapshot, tasks: Sequence[TaskSnapshot]) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=ANALYZE_PROMPT),
        ChatMessage(
            role="user",
            content=f"Project name: {project.name}\n\nTasks:\n{build_tasks_block(tasks)}",
        ),
    ]


def build_chat_messages(
    project: ProjectSnapshot,
    tasks: Sequence[TaskSnapshot],
    question: str,
    history: Sequence[HistoryMessage] = (),
) -> list[ChatMessage]:
    context = _truncate(project.context or "", CONTEXT_CHAR_LIMIT)
    context_block = f"\nProject documents:\n{context}\n" if context else ""
    messages = [
        ChatMessage(
            role="system",
            content=CHAT_PROMPT.format(
                project_name=project.name,
                context_block=context_block,
                tasks_block=build_tasks_block(tasks),
            ),
        )
    ]
    for turn in list(history)[-CHAT_HISTORY_LIMIT:]:
        if turn.role in {"user", "assistant"} and turn.content.strip():
            messages.append(ChatMessage(role=turn.role, content=turn.content.strip()))
    messages.append(ChatMessage(role="user", content=question.strip()))
    return messages


def build_extraction_messages(document: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=DOC_TO_TASKS_PROMPT),
        ChatMessage(role="user", content=f"Document:\n{_truncate(document, DOCUMENT_CHAR_LIMIT)}"),
    ]


def _truncate(text: str, max_chars: int) -> str:
    text = text.strip()
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."
