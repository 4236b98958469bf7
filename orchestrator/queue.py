"""Single-flight FIFO render queue for shots."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
import logging
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence

from core import Shot
from render.classifier import FailureKind, classify_failure
from render.job_client import RenderJobClient, RenderJobResult


logger = logging.getLogger(__name__)

INTER_JOB_DELAY_S = 3.0

ProgressFn = Callable[[float], None]
CompleteFn = Callable[[str], None]
ErrorFn = Callable[[str, FailureKind], None]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class ShotOutcome:
    """Terminal result of one queue entry."""

    shot_id: str
    success: bool
    video_url: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    config_error: bool = False


@dataclass
class RenderQueueEntry:
    """A shot snapshot plus the callbacks owned by the queue until it settles."""

    shot: Shot
    on_progress: Optional[ProgressFn] = None
    on_complete: Optional[CompleteFn] = None
    on_error: Optional[ErrorFn] = None
    done: Optional[asyncio.Future] = field(default=None, repr=False)


class ShotRenderQueue:
    """
    Renders queued shots one at a time, in enqueue order.

    A single worker task drains the queue; ``enqueue_batch`` starts it when
    idle and otherwise lets the running worker pick the new entries up.
    Failures are reported through the entry's callbacks and never stop the
    worker. Consecutive jobs are spaced by ``inter_job_delay_s``.
    """

    def __init__(
        self,
        client: Optional[RenderJobClient] = None,
        *,
        inter_job_delay_s: float = INTER_JOB_DELAY_S,
        sleep: Optional[SleepFn] = None,
        classifier: Callable[[str], FailureKind] = classify_failure,
    ) -> None:
        self._client = client or RenderJobClient()
        self._inter_job_delay_s = max(0.0, float(inter_job_delay_s))
        self._sleep = sleep or asyncio.sleep
        self._classify = classifier

        self._entries: Deque[RenderQueueEntry] = deque()
        self._processing = False
        self._current: Optional[RenderQueueEntry] = None
        self._worker: Optional[asyncio.Task] = None
        self._progress: Dict[str, float] = {}
        self._errors: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def queue_length(self) -> int:
        return len(self._entries)

    @property
    def is_rendering(self) -> bool:
        return self._processing

    @property
    def current_shot_id(self) -> Optional[str]:
        return self._current.shot.id if self._current is not None else None

    def progress_for(self, shot_id: str) -> Optional[float]:
        return self._progress.get(shot_id)

    def last_error(self, shot_id: str) -> Optional[str]:
        return self._errors.get(shot_id)

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(
        self,
        shot: Shot,
        *,
        on_progress: Optional[ProgressFn] = None,
        on_complete: Optional[CompleteFn] = None,
        on_error: Optional[ErrorFn] = None,
    ) -> asyncio.Future:
        """Append one entry without starting the worker. Returns the entry's outcome future."""
        entry = RenderQueueEntry(
            shot=shot.model_copy(deep=True),
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
            done=asyncio.get_running_loop().create_future(),
        )
        self._entries.append(entry)
        logger.debug("render_enqueue shot_id=%s queue_length=%s", shot.id, len(self._entries))
        return entry.done

    def enqueue_batch(
        self,
        shots: Sequence[Shot],
        *,
        on_all_complete: Optional[Callable[[], None]] = None,
        on_shot_complete: Optional[Callable[[str, str], None]] = None,
        on_shot_error: Optional[Callable[[str, str, FailureKind], None]] = None,
    ) -> asyncio.Task:
        """
        Enqueue every shot, then start the worker once if it is idle.

        The returned task resolves to the list of ``ShotOutcome`` once every
        entry has settled (success and failure both count) and fires
        ``on_all_complete`` exactly once at that point.
        """
        futures: List[asyncio.Future] = []
        for shot in shots:
            futures.append(
                self.enqueue(
                    shot,
                    on_complete=self._bind_complete(on_shot_complete, shot.id),
                    on_error=self._bind_error(on_shot_error, shot.id),
                )
            )
        logger.info("render_batch_enqueued shots=%s queue_length=%s", len(futures), len(self._entries))

        batch = asyncio.get_running_loop().create_task(self._join_batch(futures, on_all_complete))
        self.start()
        return batch

    def start(self) -> bool:
        """Start the worker unless it is already running or there is nothing to do."""
        # check-and-set must not straddle an await
        if self._processing or not self._entries:
            return False
        self._processing = True
        self._worker = asyncio.get_running_loop().create_task(self._process())
        return True

    async def wait_idle(self) -> None:
        """Wait until the current worker (if any) has drained the queue."""
        while self._worker is not None and not self._worker.done():
            await self._worker

    def clear(self) -> int:
        """Drop every pending entry; an in-flight job keeps running."""
        keep: Deque[RenderQueueEntry] = deque()
        if self._current is not None and self._entries and self._entries[0] is self._current:
            keep.append(self._entries[0])
        dropped = [entry for entry in self._entries if entry is not self._current]
        self._entries = keep
        for entry in dropped:
            if entry.done is not None and not entry.done.done():
                entry.done.cancel()
        if dropped:
            logger.info("render_queue_cleared dropped=%s", len(dropped))
        return len(dropped)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _process(self) -> None:
        logger.info("render_queue_start pending=%s", len(self._entries))
        try:
            while self._entries:
                entry = self._entries[0]
                self._current = entry
                logger.info("render_shot_start shot_id=%s shot_number=%s", entry.shot.id, entry.shot.shot_number)

                outcome = await self._render(entry)

                if self._entries and self._entries[0] is entry:
                    self._entries.popleft()
                self._current = None
                self._settle(entry, outcome)

                if self._entries:
                    await self._sleep(self._inter_job_delay_s)
        finally:
            self._current = None
            self._processing = False
            logger.info("render_queue_idle")

    async def _render(self, entry: RenderQueueEntry) -> ShotOutcome:
        shot = entry.shot

        def _progress(value: float) -> None:
            self._progress[shot.id] = value
            if entry.on_progress is not None:
                entry.on_progress(value)

        try:
            result = await self._client.submit_and_await(shot.code or "", shot.duration_frames, on_progress=_progress)
        except Exception as exc:
            logger.exception("render_job_crashed shot_id=%s", shot.id)
            result = RenderJobResult(success=False, error=str(exc) or "Unknown error")

        if result.success and result.video_url:
            return ShotOutcome(shot_id=shot.id, success=True, video_url=result.video_url)

        message = result.error or "Unknown error"
        kind = FailureKind.INFRASTRUCTURE if result.config_error else self._classify(message)
        return ShotOutcome(
            shot_id=shot.id,
            success=False,
            error=message,
            kind=kind,
            config_error=result.config_error,
        )

    def _settle(self, entry: RenderQueueEntry, outcome: ShotOutcome) -> None:
        if outcome.success:
            self._errors.pop(outcome.shot_id, None)
            logger.info("render_shot_complete shot_id=%s video_url=%s", outcome.shot_id, outcome.video_url)
            self._invoke(entry.on_complete, outcome.video_url)
        else:
            self._errors[outcome.shot_id] = outcome.error or ""
            logger.warning(
                "render_shot_failed shot_id=%s kind=%s error=%s",
                outcome.shot_id,
                outcome.kind.value if outcome.kind else None,
                outcome.error,
            )
            self._invoke(entry.on_error, outcome.error, outcome.kind)

        if entry.done is not None and not entry.done.done():
            entry.done.set_result(outcome)

    @staticmethod
    def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("render queue callback failed")

    # ------------------------------------------------------------------
    # Batch helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _bind_complete(callback: Optional[Callable[[str, str], None]], shot_id: str) -> Optional[CompleteFn]:
        if callback is None:
            return None
        return lambda video_url: callback(shot_id, video_url)

    @staticmethod
    def _bind_error(callback: Optional[Callable[[str, str, FailureKind], None]], shot_id: str) -> Optional[ErrorFn]:
        if callback is None:
            return None
        return lambda message, kind: callback(shot_id, message, kind)

    @staticmethod
    async def _join_batch(
        futures: List[asyncio.Future],
        on_all_complete: Optional[Callable[[], None]],
    ) -> List[ShotOutcome]:
        if futures:
            await asyncio.wait(futures)
        if any(future.cancelled() for future in futures):
            logger.info("render_batch_abandoned cleared=%s", sum(1 for f in futures if f.cancelled()))
            return [future.result() for future in futures if not future.cancelled()]

        outcomes = [future.result() for future in futures]
        if on_all_complete is not None:
            try:
                on_all_complete()
            except Exception:
                logger.exception("batch completion callback failed")
        return outcomes
