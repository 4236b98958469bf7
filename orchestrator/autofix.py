"""Bounded automatic repair of shots whose render failed on a code defect."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Set

from core import ShotCodeRequest
from intelligence.codegen import BaseCodeGenerator
from intelligence.prompts import build_repair_description
from utils.exceptions import ShotNotFoundError

from .store import ShotLifecycleStore


logger = logging.getLogger(__name__)

MAX_AUTOFIX_ATTEMPTS = 2

RequestBuilder = Callable[..., ShotCodeRequest]
ResubmitFn = Callable[[str], object]


class AutoFixController:
    """
    Regenerates a failed shot's code from a repair prompt and re-renders it.

    Each shot gets at most ``max_attempts`` repairs. The counter lives in the
    store and is cleared only when a render succeeds.
    """

    def __init__(
        self,
        store: ShotLifecycleStore,
        generator: BaseCodeGenerator,
        resubmit: ResubmitFn,
        *,
        request_builder: RequestBuilder,
        max_attempts: int = MAX_AUTOFIX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._generator = generator
        self._resubmit = resubmit
        self._build_request = request_builder
        self.max_attempts = max(0, int(max_attempts))
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_fixes(self) -> int:
        return len(self._tasks)

    def schedule_fix(self, shot_id: str, error_message: str) -> asyncio.Task:
        """Fire-and-forget ``attempt_fix``; progress is observable through the store."""
        task = asyncio.get_running_loop().create_task(self.attempt_fix(shot_id, error_message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def attempt_fix(self, shot_id: str, error_message: str) -> bool:
        """Returns True when repaired code was produced and re-submitted."""
        shot = self._store.find(shot_id)
        if shot is None:
            logger.info("autofix_skipped shot_id=%s reason=removed", shot_id)
            return False

        attempts = self._store.retry_count(shot_id)
        if attempts >= self.max_attempts:
            message = f"Code error after {self.max_attempts} attempts: {error_message}"
            logger.warning("autofix_exhausted shot_id=%s attempts=%s", shot_id, attempts)
            self._store.mark_error(shot_id, message)
            return False

        attempt = self._store.increment_retry(shot_id)
        logger.info(
            "autofix_start shot_id=%s shot_number=%s attempt=%s/%s",
            shot_id,
            shot.shot_number,
            attempt,
            self.max_attempts,
        )
        try:
            self._store.mark_generating(shot_id)
            request = self._build_request(
                shot_id,
                description=build_repair_description(shot.description, error_message),
                previous_code=shot.code,
            )
            code = await self._generator.generate(request)
        except ShotNotFoundError:
            logger.info("autofix_skipped shot_id=%s reason=removed", shot_id)
            return False
        except Exception as exc:
            logger.warning("autofix_generation_failed shot_id=%s error=%s", shot_id, exc)
            self._mark_error(shot_id, str(exc) or "Failed to generate code")
            return False

        try:
            self._store.mark_code_ready(shot_id, code)
        except ShotNotFoundError:
            logger.info("autofix_skipped shot_id=%s reason=removed", shot_id)
            return False

        self._resubmit(shot_id)
        return True

    def _mark_error(self, shot_id: str, message: str) -> None:
        try:
            self._store.mark_error(shot_id, message)
        except ShotNotFoundError:
            logger.info("autofix_skipped shot_id=%s reason=removed", shot_id)
