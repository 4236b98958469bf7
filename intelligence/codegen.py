"""
Shot code generation
Streams component code as server-sent events and accumulates it into source.

Wire format (one event per frame):
    data: {"type": "code" | "done" | "error", "content": "..."}  (blank line after each)
"""
from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from core import ShotCodeRequest
from utils.exceptions import CodeGenerationError, ConfigurationError

from .llm import BaseLLM, Message, get_llm
from .prompts import SHOT_SYSTEM_PROMPT, build_shot_prompt


logger = logging.getLogger(__name__)

EVENT_TYPES = ("code", "done", "error")


@dataclass
class CodeStreamEvent:
    type: str
    content: str = ""


def encode_sse(event: CodeStreamEvent) -> str:
    return f"data: {json.dumps({'type': event.type, 'content': event.content})}\n\n"


def _parse_line(line: str) -> Optional[CodeStreamEvent]:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    try:
        data = json.loads(payload)
    except ValueError:
        logger.warning("sse_malformed_line line=%s", payload[:200])
        return None
    if not isinstance(data, dict) or data.get("type") not in EVENT_TYPES:
        logger.warning("sse_unknown_event payload=%s", payload[:200])
        return None
    return CodeStreamEvent(type=str(data["type"]), content=str(data.get("content") or ""))


async def iter_sse_events(chunks: AsyncIterator[str]) -> AsyncIterator[CodeStreamEvent]:
    """Decode events from arbitrarily split text chunks."""
    buffer = ""
    async for chunk in chunks:
        buffer += chunk
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            event = _parse_line(line)
            if event is not None:
                yield event
    if buffer.strip():
        event = _parse_line(buffer)
        if event is not None:
            yield event


async def collect_code(chunks: AsyncIterator[str]) -> str:
    """
    Concatenate ``code`` events until ``done``.

    Raises:
        CodeGenerationError: on an ``error`` event, when the stream ends
            without ``done``, or when no code was produced.
    """
    parts = []
    finished = False
    events = iter_sse_events(chunks)
    try:
        async for event in events:
            if event.type == "code":
                parts.append(event.content)
            elif event.type == "error":
                raise CodeGenerationError(event.content or "Code generation failed")
            else:
                finished = True
                break
    finally:
        await events.aclose()
        close = getattr(chunks, "aclose", None)
        if close is not None:
            await close()

    if not finished:
        raise CodeGenerationError("Code stream ended before completion")
    code = "".join(parts)
    if not code.strip():
        raise CodeGenerationError("Generated code is empty")
    return code


class BaseCodeGenerator:
    """Produces component code for one shot as an SSE text stream."""

    name = "base"

    def stream(self, request: ShotCodeRequest) -> AsyncIterator[str]:
        raise NotImplementedError

    async def generate(self, request: ShotCodeRequest) -> str:
        logger.info("codegen_start generator=%s shot_number=%s revise=%s",
                    self.name, request.shot_number, bool(request.previous_code))
        code = await collect_code(self.stream(request))
        logger.info("codegen_done generator=%s shot_number=%s chars=%s", self.name, request.shot_number, len(code))
        return code

    async def aclose(self) -> None:
        return None


class LLMCodeGenerator(BaseCodeGenerator):
    """Generates code in-process through the configured LLM."""

    name = "llm"

    def __init__(self, llm: Optional[BaseLLM] = None):
        self._llm = llm

    def _get_llm(self) -> BaseLLM:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def stream(self, request: ShotCodeRequest) -> AsyncIterator[str]:
        messages = [
            Message.system(SHOT_SYSTEM_PROMPT),
            Message.user(build_shot_prompt(request)),
        ]
        try:
            async for text in self._get_llm().astream(messages):
                if text:
                    yield encode_sse(CodeStreamEvent(type="code", content=text))
        except Exception as exc:
            logger.exception("codegen_stream_failed shot_number=%s", request.shot_number)
            yield encode_sse(CodeStreamEvent(type="error", content=str(exc) or "Failed to generate code"))
            return
        yield encode_sse(CodeStreamEvent(type="done"))

    async def aclose(self) -> None:
        if self._llm is not None:
            await self._llm.aclose()


def request_payload(request: ShotCodeRequest) -> Dict[str, Any]:
    """JSON body understood by the generate-shot HTTP endpoint."""
    def _dump(model) -> Optional[Dict[str, Any]]:
        return model.model_dump(by_alias=True) if model is not None else None

    def _neighbor(ctx) -> Optional[Dict[str, Any]]:
        if ctx is None:
            return None
        return {"shotNumber": ctx.shot_number, "keyMessage": ctx.key_message, "description": ctx.description}

    return {
        "shotDescription": request.description,
        "visualElements": list(request.visual_elements),
        "duration": request.duration_frames,
        "shotNumber": request.shot_number,
        "totalShots": request.total_shots,
        "previousCode": request.previous_code,
        "visualTheme": _dump(request.visual_theme),
        "narrativeTheme": _dump(request.narrative_theme),
        "narrativeRole": request.narrative_role,
        "narrativeConnection": request.narrative_connection,
        "keyMessage": request.key_message,
        "emotionalTone": request.emotional_tone,
        "previousShotContext": _neighbor(request.previous_shot),
        "nextShotContext": _neighbor(request.next_shot),
    }


class RemoteCodeGenerator(BaseCodeGenerator):
    """Consumes a remote generate-shot endpoint that already speaks SSE."""

    name = "remote"

    def __init__(
        self,
        service_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 120.0,
    ):
        self.service_url = str(service_url or "").strip()
        if not self.service_url:
            raise ConfigurationError("Code generation service URL is not configured")
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def stream(self, request: ShotCodeRequest) -> AsyncIterator[str]:
        try:
            async with self._get_client().stream("POST", self.service_url, json=request_payload(request)) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    message = _error_from_body(body) or f"Code generation failed with status {response.status_code}"
                    raise CodeGenerationError(message)
                async for chunk in response.aiter_text():
                    yield chunk
        except httpx.HTTPError as exc:
            raise CodeGenerationError(f"code generation request failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _error_from_body(body: bytes) -> str:
    try:
        data = json.loads(body or b"{}")
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("error") or "").strip()
    return ""


def get_code_generator(service_url: Optional[str] = None, llm: Optional[BaseLLM] = None) -> BaseCodeGenerator:
    """Remote generator when a service URL is configured, in-process LLM otherwise."""
    if service_url is None and llm is None:
        from config import get_llm_settings
        service_url = get_llm_settings().codegen_service_url
    if service_url:
        return RemoteCodeGenerator(service_url)
    return LLMCodeGenerator(llm)
