from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable
from typing import TypeVar

import httpx

from doc_study.models import GenerationRequest, HealthResult, OllamaModel
from doc_study.providers.base import (
    CancelToken,
    LLMProvider,
    OllamaConnectionError,
    OllamaError,
    OllamaStatusError,
    OllamaTimeoutError,
    StreamInterruptedError,
)

log = logging.getLogger("doc_study.llm")

T = TypeVar("T")

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama3"
GENERATION_TIMEOUT = 120.0
HEALTH_TIMEOUT = 30.0

# Pre-response connection failures get exactly one retry
MAX_ATTEMPTS = 2


class _Cancelled(Exception):
    pass


async def _race(aw: Awaitable[T], deadline: float, cancel: CancelToken | None) -> T:
    """Await *aw* against the request deadline and the cancel token.

    Whichever finishes first wins; the losers are cancelled.  Raises
    :class:`OllamaTimeoutError` when the deadline passes first and
    ``_Cancelled`` when the token fires first.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(aw)
    waiters: set[asyncio.Future] = {task}
    cancel_task = None
    if cancel is not None:
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)

    try:
        done, pending = await asyncio.wait(
            waiters,
            timeout=max(0.0, deadline - loop.time()),
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        for w in waiters:
            w.cancel()
        raise

    for w in pending:
        w.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        return task.result()
    if cancel_task is not None and cancel_task in done:
        raise _Cancelled()
    raise OllamaTimeoutError("Generation timed out: request aborted")


async def _next_line(lines: AsyncIterator[str]) -> str:
    return await lines.__anext__()


class OllamaProvider(LLMProvider):
    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = GENERATION_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport

    def _client(self, timeout: float | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    # ── Model listing ────────────────────────────────────────────────────

    async def list_models(self, base_url: str | None = None) -> list[OllamaModel]:
        url = (base_url or self.base_url).rstrip("/")
        async with self._client(HEALTH_TIMEOUT) as client:
            resp = await client.get(f"{url}/api/tags")
            if resp.status_code >= 400:
                raise OllamaStatusError(resp.status_code, resp.reason_phrase)
        try:
            return [
                OllamaModel(
                    name=m["name"],
                    size=m.get("size", 0),
                    modified_at=m.get("modified_at", ""),
                )
                for m in resp.json().get("models", [])
            ]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log.warning("Malformed /api/tags response: %.200s", resp.text)
            raise OllamaError(f"Malformed model list from Ollama: {e!r}") from e

    async def check_health(self, base_url: str | None = None) -> HealthResult:
        try:
            models = await self.list_models(base_url)
        except Exception as e:
            log.warning("Health check failed: %s", e)
            return HealthResult(connected=False, models=[])
        log.info("Health check OK, %d model(s) available", len(models))
        return HealthResult(connected=True, models=[m.name for m in models])

    # ── Streaming generation ─────────────────────────────────────────────

    async def _open_stream(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: dict,
        deadline: float,
        cancel: CancelToken | None,
    ) -> httpx.Response:
        last_error: httpx.TransportError | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            request = client.build_request("POST", url, json=body)
            try:
                response = await _race(client.send(request, stream=True), deadline, cancel)
            except httpx.TimeoutException as e:
                raise OllamaTimeoutError(f"Generation timed out: {e}") from e
            except httpx.TransportError as e:
                last_error = e
                if attempt < MAX_ATTEMPTS:
                    log.warning("Transient error (attempt %d/%d): %s, retrying",
                                attempt, MAX_ATTEMPTS, e)
                continue

            # 4xx and 5xx are surfaced as-is, never retried
            if response.status_code >= 400:
                await response.aclose()
                raise OllamaStatusError(response.status_code, response.reason_phrase)
            return response

        raise OllamaConnectionError(f"Could not reach Ollama at {url}: {last_error}") from last_error

    async def generate(
        self, request: GenerationRequest, cancel: CancelToken | None = None
    ) -> AsyncIterator[str]:
        """Stream fragments from ``/api/generate``.

        The deadline is armed once per request and covers connecting, the
        retry and every read.  Cancelling *cancel* closes the transport and
        ends the iteration without raising.
        """
        timeout = request.timeout if request.timeout is not None else self.timeout
        base_url = (request.base_url or self.base_url).rstrip("/")
        body = {"model": request.model, "prompt": request.prompt, "stream": True}

        if cancel is not None and cancel.cancelled:
            return

        log.info("── STREAM PROMPT (%s, %d chars) ──", request.model, len(request.prompt))
        log.debug("%s", request.prompt)
        t0 = time.monotonic()
        deadline = asyncio.get_running_loop().time() + timeout
        fragments = 0

        async with self._client(None) as client:
            try:
                response = await self._open_stream(
                    client, f"{base_url}/api/generate", body, deadline, cancel,
                )
            except _Cancelled:
                log.info("── STREAM CANCELLED (before response) ──")
                return

            lines = response.aiter_lines()
            try:
                while True:
                    if cancel is not None and cancel.cancelled:
                        log.info("── STREAM CANCELLED (%d fragments) ──", fragments)
                        return
                    try:
                        line = await _race(_next_line(lines), deadline, cancel)
                    except StopAsyncIteration:
                        break
                    except _Cancelled:
                        log.info("── STREAM CANCELLED (%d fragments) ──", fragments)
                        return
                    except httpx.TransportError as e:
                        log.error("Stream interrupted after %d fragments: %s", fragments, e)
                        raise StreamInterruptedError(
                            "Stream interrupted: partial results discarded"
                        ) from e

                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        log.warning("Failed to parse stream line: %.200s", line)
                        continue
                    if not isinstance(data, dict):
                        log.warning("Unexpected stream line: %.200s", line)
                        continue

                    fragment = data.get("response") or ""
                    if fragment and not (cancel is not None and cancel.cancelled):
                        fragments += 1
                        yield fragment
                    if data.get("done"):
                        break
            finally:
                await lines.aclose()
                await response.aclose()

        elapsed = time.monotonic() - t0
        log.info("── STREAM COMPLETE (%.1fs, %d fragments) ──", elapsed, fragments)

    def name(self) -> str:
        return f"ollama/{self.model}"
