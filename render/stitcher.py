"""Final video assembly: one composition job over every completed shot."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core import Shot, ShotStatus

from .job_client import STITCH_MAX_POLL_ATTEMPTS, ProgressFn, RenderJobClient, RenderJobResult


logger = logging.getLogger(__name__)


class Stitcher:
    """Submit completed shots as a single composition and poll it to a video URL."""

    def __init__(
        self,
        client: Optional[RenderJobClient] = None,
        *,
        max_poll_attempts: int = STITCH_MAX_POLL_ATTEMPTS,
    ) -> None:
        self._client = client or RenderJobClient()
        self.max_poll_attempts = max(1, int(max_poll_attempts))

    async def stitch(self, shots: Sequence[Shot], on_progress: Optional[ProgressFn] = None) -> RenderJobResult:
        ready = sorted(
            (shot for shot in shots if shot.status == ShotStatus.COMPLETE and shot.code),
            key=lambda shot: shot.shot_number,
        )
        if not ready:
            return RenderJobResult(success=False, error="No completed shots to stitch")

        logger.info("stitch_start shots=%s", len(ready))
        submission = await self._client.backend.submit_composition(ready)
        result = await self._client.await_submission(
            submission,
            on_progress=on_progress,
            max_poll_attempts=self.max_poll_attempts,
        )
        if result.success:
            logger.info("stitch_done video_url=%s", result.video_url)
        else:
            logger.warning("stitch_failed error=%s", result.error)
        return result
