import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

from pm_agent.domain.ai.providers.base import CompletionProvider


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelBackend:
    """One configured provider slot. `client` is None when it could not be built."""

    name: str
    client: CompletionProvider | None = None
    unavailable_reason: str | None = None

    @property
    def available(self) -> bool:
        return self.client is not None

    @classmethod
    def construct(cls, name: str, builder: Callable[[], CompletionProvider]) -> "ModelBackend":
        try:
            client = builder()
        except Exception as exc:
            logger.warning("AI backend %s unavailable: %s", name, exc)
            return cls(name=name, client=None, unavailable_reason=str(exc) or type(exc).__name__)
        logger.info("AI backend %s ready", name)
        return cls(name=name, client=client)


class ModelClientPool:
    """Ordered backends for the completion capability, primary first.

    The pool never retries; fallback ordering belongs to the invoker.
    """

    def __init__(self, backends: Sequence[ModelBackend] = ()) -> None:
        self._backends = tuple(backends)

    @property
    def backends(self) -> tuple[ModelBackend, ...]:
        return self._backends

    def available(self) -> list[ModelBackend]:
        return [backend for backend in self._backends if backend.available]

    def available_names(self) -> list[str]:
        return [backend.name for backend in self.available()]

    @property
    def is_empty(self) -> bool:
        return not self.available()

    def __iter__(self) -> Iterator[ModelBackend]:
        return iter(self.available())
