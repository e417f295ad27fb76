from dataclasses import dataclass
from typing import Literal, Protocol, Sequence


Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


class CompletionProvider(Protocol):
    """Backend contract: turn a message sequence into completion text."""

    name: str

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        ...
