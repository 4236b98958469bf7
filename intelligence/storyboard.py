"""
Storyboard generation
Turns a free-form video concept into ordered shots plus shared themes.
"""
from __future__ import annotations

import json
import logging
import re
from typing import List, Optional
from uuid import uuid4

from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core import FPS, Shot, StoryboardResponse
from utils.exceptions import StoryboardError

from .llm import BaseLLM, Message, get_llm
from .prompts import STORYBOARD_SYSTEM_PROMPT, build_storyboard_prompt


logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_storyboard(text: str) -> StoryboardResponse:
    """Parse the first ``{...}`` span of a model reply into a storyboard."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise StoryboardError("Could not parse storyboard JSON from response")
    try:
        data = json.loads(match.group(0))
    except ValueError as exc:
        raise StoryboardError(f"Invalid storyboard JSON: {exc}") from exc
    try:
        storyboard = StoryboardResponse.model_validate(data)
    except ValidationError as exc:
        raise StoryboardError(f"Storyboard does not match the expected shape: {exc.error_count()} errors") from exc
    if not storyboard.shots:
        raise StoryboardError("Storyboard has no shots")
    return storyboard


def shots_from_storyboard(storyboard: StoryboardResponse) -> List[Shot]:
    """Pending shots in storyboard order, numbered from 1."""
    ordered = sorted(enumerate(storyboard.shots), key=lambda item: (item[1].shot_number, item[0]))
    shots = []
    for number, (_, descriptor) in enumerate(ordered, start=1):
        shots.append(
            Shot(
                id=f"shot-{number}-{uuid4().hex[:10]}",
                shot_number=number,
                description=descriptor.description,
                visual_elements=list(descriptor.visual_elements),
                duration_frames=max(1, int(round(descriptor.suggested_duration * FPS))),
                narrative_role=descriptor.narrative_role,
                narrative_connection=descriptor.narrative_connection,
                key_message=descriptor.key_message,
                emotional_tone=descriptor.emotional_tone,
            )
        )
    return shots


class StoryboardGenerator:
    """LLM-backed storyboard creation with retry on unusable replies."""

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        *,
        max_attempts: int = 3,
        wait=None,
    ):
        self._llm = llm
        self.max_attempts = max(1, int(max_attempts))
        self._wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=10)

    def _get_llm(self) -> BaseLLM:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def generate(self, prompt: str) -> StoryboardResponse:
        prompt = str(prompt or "").strip()
        if not prompt:
            raise StoryboardError("Prompt is required")

        messages = [
            Message.system(STORYBOARD_SYSTEM_PROMPT),
            Message.user(build_storyboard_prompt(prompt)),
        ]
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(StoryboardError),
            reraise=True,
        ):
            with attempt:
                response = await self._get_llm().acomplete(messages, max_tokens=2048)
                storyboard = parse_storyboard(response.content)

        logger.info("storyboard_generated shots=%s total_duration=%s", len(storyboard.shots), storyboard.total_duration)
        return storyboard

    async def aclose(self) -> None:
        if self._llm is not None:
            await self._llm.aclose()
