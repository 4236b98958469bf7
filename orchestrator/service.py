"""Pipeline service: storyboard, code generation, rendering, repair and stitching."""

from __future__ import annotations

import asyncio
from functools import lru_cache
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

from config import PipelineSettings, get_pipeline_settings
from core import NarrativeTheme, Shot, ShotCodeRequest, ShotStatus, StoryboardResponse, VisualTheme
from intelligence.codegen import BaseCodeGenerator, get_code_generator
from intelligence.prompts import build_edit_description
from intelligence.storyboard import StoryboardGenerator, shots_from_storyboard
from render.classifier import FailureKind
from render.job_client import ProgressFn, RenderJobClient, RenderJobResult
from render.stitcher import Stitcher
from utils.exceptions import ShotNotFoundError

from .autofix import AutoFixController
from .queue import ShotRenderQueue
from .store import ShotLifecycleStore


logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]

_GENERATABLE = {ShotStatus.PENDING, ShotStatus.CODE_READY, ShotStatus.COMPLETE, ShotStatus.ERROR}


class ShotPipeline:
    """Wires the store, render queue, code generator and auto-fix into one workflow."""

    def __init__(
        self,
        *,
        store: Optional[ShotLifecycleStore] = None,
        queue: Optional[ShotRenderQueue] = None,
        generator: Optional[BaseCodeGenerator] = None,
        stitcher: Optional[Stitcher] = None,
        storyboard_generator: Optional[StoryboardGenerator] = None,
        client: Optional[RenderJobClient] = None,
        settings: Optional[PipelineSettings] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        settings = settings or get_pipeline_settings()
        self._sleep = sleep or asyncio.sleep
        client = client or RenderJobClient(
            poll_interval_s=settings.poll_interval_s,
            max_poll_attempts=settings.max_poll_attempts,
            sleep=sleep,
        )

        self.store = store or ShotLifecycleStore()
        self.queue = queue or ShotRenderQueue(client, inter_job_delay_s=settings.inter_job_delay_s, sleep=sleep)
        self.generator = generator or get_code_generator()
        self.stitcher = stitcher or Stitcher(client, max_poll_attempts=settings.stitch_max_poll_attempts)
        self._storyboard_generator = storyboard_generator
        self.autofix = AutoFixController(
            self.store,
            self.generator,
            self._resubmit,
            request_builder=self.build_code_request,
            max_attempts=settings.max_autofix_attempts,
        )
        self.generation_spacing_s = max(0.0, float(settings.generation_spacing_s))

        self.visual_theme: Optional[VisualTheme] = None
        self.narrative_theme: Optional[NarrativeTheme] = None
        self.final_video_url: Optional[str] = None
        self._batches: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Storyboard
    # ------------------------------------------------------------------

    def accept_storyboard(self, storyboard: StoryboardResponse) -> List[Shot]:
        """Replace every shot with the storyboard's descriptors (all pending)."""
        self.visual_theme = storyboard.visual_theme
        self.narrative_theme = storyboard.narrative_theme
        self.final_video_url = None
        shots = self.store.replace_all(shots_from_storyboard(storyboard))
        logger.info("storyboard_accepted shots=%s", len(shots))
        return shots

    async def create_storyboard(self, prompt: str) -> List[Shot]:
        if self._storyboard_generator is None:
            self._storyboard_generator = StoryboardGenerator()
        storyboard = await self._storyboard_generator.generate(prompt)
        return self.accept_storyboard(storyboard)

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def build_code_request(
        self,
        shot_id: str,
        *,
        description: Optional[str] = None,
        previous_code: Optional[str] = None,
    ) -> ShotCodeRequest:
        """Code request for a shot with themes and neighbor context attached."""
        shot = self.store.get(shot_id)
        previous_shot, next_shot = self.store.neighbors(shot_id)
        return ShotCodeRequest(
            description=description or shot.description,
            visual_elements=list(shot.visual_elements),
            duration_frames=shot.duration_frames,
            shot_number=shot.shot_number,
            total_shots=len(self.store),
            previous_code=previous_code,
            visual_theme=self.visual_theme,
            narrative_theme=self.narrative_theme,
            narrative_role=shot.narrative_role,
            narrative_connection=shot.narrative_connection,
            key_message=shot.key_message,
            emotional_tone=shot.emotional_tone,
            previous_shot=previous_shot,
            next_shot=next_shot,
        )

    async def generate_shot_code(
        self,
        shot_id: str,
        *,
        description: Optional[str] = None,
        previous_code: Optional[str] = None,
    ) -> bool:
        """generating -> code_ready, or -> error when generation fails."""
        self.store.mark_generating(shot_id)
        request = self.build_code_request(shot_id, description=description, previous_code=previous_code)
        try:
            code = await self.generator.generate(request)
        except Exception as exc:
            logger.warning("shot_generation_failed shot_id=%s error=%s", shot_id, exc)
            try:
                self.store.mark_error(shot_id, str(exc) or "Unknown error")
            except ShotNotFoundError:
                logger.info("generation_result_dropped shot_id=%s reason=removed", shot_id)
            return False

        try:
            self.store.mark_code_ready(shot_id, code)
        except ShotNotFoundError:
            logger.info("generation_result_dropped shot_id=%s reason=removed", shot_id)
            return False
        return True

    async def generate_and_render_all(self) -> List[asyncio.Task]:
        """
        Generate every shot in order and queue each one for rendering as soon
        as its code is ready. Returns the render batch tasks.
        """
        batches: List[asyncio.Task] = []
        shots = self.store.list_shots()
        for idx, shot in enumerate(shots):
            current = self.store.find(shot.id)
            if current is None:
                continue
            if current.status not in _GENERATABLE:
                logger.info("pipeline_skip shot_id=%s status=%s", shot.id, current.status.value)
                continue

            logger.info("pipeline_generate shot_number=%s/%s", current.shot_number, len(shots))
            if await self.generate_shot_code(shot.id):
                batches.append(self.render_shots([shot.id]))

            if idx < len(shots) - 1:
                await self._sleep(self.generation_spacing_s)
        return batches

    async def regenerate_shot(self, shot_id: str, edit_prompt: str) -> bool:
        """Revise the current code with an edit instruction; stops at code_ready."""
        shot = self.store.get(shot_id)
        return await self.generate_shot_code(
            shot_id,
            description=build_edit_description(shot.description, edit_prompt),
            previous_code=shot.code,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_shots(
        self,
        shot_ids: Optional[Sequence[str]] = None,
        *,
        on_all_complete: Optional[Callable[[], None]] = None,
    ) -> asyncio.Task:
        """Mark shots rendering and queue them as one batch (default: every code_ready shot)."""
        if shot_ids is None:
            shot_ids = [shot.id for shot in self.store.list_shots() if shot.status == ShotStatus.CODE_READY]

        shots = self.store.mark_rendering_batch(list(shot_ids))
        batch = self.queue.enqueue_batch(
            shots,
            on_all_complete=on_all_complete,
            on_shot_complete=self._on_shot_complete,
            on_shot_error=self._on_shot_error,
        )
        self._batches.add(batch)
        batch.add_done_callback(self._batches.discard)
        return batch

    def retry_render(self, shot_id: str) -> asyncio.Task:
        """Re-render a shot with its existing code."""
        shot = self.store.get(shot_id)
        if not shot.code:
            raise ValueError("No code available to render")
        logger.info("manual_retry shot_id=%s", shot_id)
        return self.render_shots([shot_id])

    def _resubmit(self, shot_id: str) -> asyncio.Task:
        return self.render_shots([shot_id])

    def _on_shot_complete(self, shot_id: str, video_url: str) -> None:
        self.store.clear_retry(shot_id)
        try:
            self.store.mark_complete(shot_id, video_url)
        except ShotNotFoundError:
            logger.info("render_result_dropped shot_id=%s reason=removed", shot_id)

    def _on_shot_error(self, shot_id: str, message: str, kind: FailureKind) -> None:
        try:
            self.store.mark_error(shot_id, message)
        except ShotNotFoundError:
            logger.info("render_result_dropped shot_id=%s reason=removed", shot_id)
            return
        if kind == FailureKind.CODE_DEFECT:
            self.autofix.schedule_fix(shot_id, message)

    async def wait_until_settled(self) -> None:
        """Wait for queued renders, pending repairs and their re-renders to finish."""
        while True:
            if self.queue.queue_length and not self.queue.is_rendering:
                self.queue.start()
            await self.queue.wait_idle()
            await self.autofix.wait_idle()
            if self._batches:
                await asyncio.gather(*list(self._batches), return_exceptions=True)
            if not (
                self.queue.is_rendering
                or self.queue.queue_length
                or self.autofix.pending_fixes
                or self._batches
            ):
                return

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update_description(self, shot_id: str, description: str) -> Shot:
        return self.store.update(shot_id, description=description)

    def remove_shot(self, shot_id: str) -> List[Shot]:
        return self.store.remove(shot_id)

    def reorder_shots(self, shot_ids: Sequence[str]) -> List[Shot]:
        return self.store.reorder(shot_ids)

    # ------------------------------------------------------------------
    # Final video
    # ------------------------------------------------------------------

    async def stitch_final(self, on_progress: Optional[ProgressFn] = None) -> RenderJobResult:
        result = await self.stitcher.stitch(self.store.list_shots(), on_progress=on_progress)
        if result.success:
            self.final_video_url = result.video_url
        return result

    async def aclose(self) -> None:
        await self.generator.aclose()
        if self._storyboard_generator is not None:
            await self._storyboard_generator.aclose()


@lru_cache()
def get_default_pipeline() -> ShotPipeline:
    return ShotPipeline()
