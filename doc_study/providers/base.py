from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from doc_study.models import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    GenerationEvent,
    GenerationRequest,
    HealthResult,
    OllamaModel,
)


class OllamaError(RuntimeError):
    """Base class for inference server failures."""


class OllamaStatusError(OllamaError):
    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        msg = f"Ollama API returned {status_code}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class OllamaConnectionError(OllamaError):
    pass


class OllamaTimeoutError(OllamaError):
    pass


class StreamInterruptedError(OllamaError):
    pass


class CancelToken:
    """Cancellation signal passed alongside a generation request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class LLMProvider(ABC):
    model: str
    base_url: str

    @abstractmethod
    def generate(
        self, request: GenerationRequest, cancel: CancelToken | None = None
    ) -> AsyncIterator[str]:
        """Stream response fragments for *request* in arrival order."""
        ...

    @abstractmethod
    async def list_models(self, base_url: str | None = None) -> list[OllamaModel]:
        ...

    @abstractmethod
    async def check_health(self, base_url: str | None = None) -> HealthResult:
        ...

    def request(self, prompt: str, timeout: float | None = None) -> GenerationRequest:
        return GenerationRequest(
            model=self.model, prompt=prompt, base_url=self.base_url, timeout=timeout,
        )

    async def generate_events(
        self, request: GenerationRequest, cancel: CancelToken | None = None
    ) -> AsyncIterator[GenerationEvent]:
        """Wrap :meth:`generate` as Chunk events closed by a Done or Error event.

        A cancelled stream ends after its last chunk with no closing event.
        """
        try:
            async for fragment in self.generate(request, cancel):
                yield ChunkEvent(fragment)
        except OllamaError as e:
            yield ErrorEvent(str(e))
            return
        if cancel is not None and cancel.cancelled:
            return
        yield DoneEvent()

    @abstractmethod
    def name(self) -> str:
        ...
