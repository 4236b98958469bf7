"""Drives one render job from submission to a terminal outcome."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional

from utils.exceptions import RenderBackendError

from .adapters import BaseRenderBackend, JobSubmission, LambdaRenderBackend, RenderJob


logger = logging.getLogger(__name__)

ProgressFn = Callable[[float], None]
SleepFn = Callable[[float], Awaitable[Any]]

POLL_INTERVAL_S = 3.0
MAX_POLL_ATTEMPTS = 120
STITCH_MAX_POLL_ATTEMPTS = 200

TIMEOUT_MESSAGE = "Render timeout"


@dataclass
class RenderJobResult:
    """Terminal outcome of one render job."""

    success: bool
    video_url: Optional[str] = None
    error: Optional[str] = None
    config_error: bool = False
    job_id: Optional[str] = None
    polls: int = 0


def first_error_message(errors: List[Any]) -> str:
    """Human-readable message of the first backend error entry."""
    if not errors:
        return "Render failed"
    first = errors[0]
    if isinstance(first, str):
        return first or "Render failed"
    if isinstance(first, dict) and first.get("message"):
        return str(first["message"])
    try:
        return json.dumps(first)
    except (TypeError, ValueError):
        return str(first)


class RenderJobClient:
    """Submit a shot's code and poll the backend until done, failed or timed out."""

    def __init__(
        self,
        backend: Optional[BaseRenderBackend] = None,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.backend = backend or LambdaRenderBackend()
        self.poll_interval_s = max(0.0, float(poll_interval_s))
        self.max_poll_attempts = max(1, int(max_poll_attempts))
        self._sleep = sleep or asyncio.sleep

    async def submit_and_await(
        self,
        code: str,
        duration_frames: int,
        on_progress: Optional[ProgressFn] = None,
    ) -> RenderJobResult:
        if not str(code or "").strip():
            return RenderJobResult(success=False, error="Code is required")
        if isinstance(duration_frames, bool) or not isinstance(duration_frames, int) or duration_frames <= 0:
            return RenderJobResult(success=False, error="duration_frames must be a positive integer")

        submission = await self.backend.submit(code, duration_frames)
        return await self._follow(submission, on_progress=on_progress)

    async def await_submission(
        self,
        submission: JobSubmission,
        on_progress: Optional[ProgressFn] = None,
        *,
        max_poll_attempts: Optional[int] = None,
    ) -> RenderJobResult:
        """Poll an already submitted job (used by the stitch flow)."""
        return await self._follow(submission, on_progress=on_progress, max_poll_attempts=max_poll_attempts)

    async def _follow(
        self,
        submission: JobSubmission,
        *,
        on_progress: Optional[ProgressFn],
        max_poll_attempts: Optional[int] = None,
    ) -> RenderJobResult:
        if not submission.success or submission.job is None:
            return RenderJobResult(
                success=False,
                error=submission.error or "Failed to start render",
                config_error=submission.config_error,
            )
        return await self.poll_until_done(
            submission.job,
            on_progress=on_progress,
            max_poll_attempts=max_poll_attempts,
        )

    async def poll_until_done(
        self,
        job: RenderJob,
        *,
        on_progress: Optional[ProgressFn] = None,
        max_poll_attempts: Optional[int] = None,
    ) -> RenderJobResult:
        cap = self.max_poll_attempts if max_poll_attempts is None else max(1, int(max_poll_attempts))

        for attempt in range(1, cap + 1):
            try:
                snapshot = await self.backend.get_progress(job)
            except RenderBackendError as exc:
                return RenderJobResult(success=False, error=str(exc), job_id=job.job_id, polls=attempt)

            job.progress = max(0.0, min(1.0, float(snapshot.overall_progress or 0.0)))
            self._notify(on_progress, job.progress)

            if snapshot.done and snapshot.output_file:
                logger.info("render_done job_id=%s polls=%s output=%s", job.job_id, attempt, snapshot.output_file)
                return RenderJobResult(success=True, video_url=snapshot.output_file, job_id=job.job_id, polls=attempt)

            if snapshot.fatal_error:
                message = first_error_message(snapshot.errors)
                logger.warning("render_fatal job_id=%s polls=%s error=%s", job.job_id, attempt, message)
                return RenderJobResult(success=False, error=message, job_id=job.job_id, polls=attempt)

            if attempt < cap:
                await self._sleep(self.poll_interval_s)

        logger.warning("render_timeout job_id=%s polls=%s", job.job_id, cap)
        return RenderJobResult(success=False, error=TIMEOUT_MESSAGE, job_id=job.job_id, polls=cap)

    @staticmethod
    def _notify(on_progress: Optional[ProgressFn], progress: float) -> None:
        if on_progress is None:
            return
        try:
            on_progress(progress)
        except Exception:
            logger.exception("progress callback failed")
