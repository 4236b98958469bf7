from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from config import PipelineSettings
from core import Shot, ShotStatus
from intelligence.codegen import BaseCodeGenerator, CodeStreamEvent, encode_sse
from render.adapters import BaseRenderBackend, JobSubmission, ProgressSnapshot, RenderJob


class SleepRecorder:
    """Stands in for asyncio.sleep: records the delay and yields once."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class ScriptedBackend(BaseRenderBackend):
    """
    Render backend fake. ``decide(code)`` returns None for success or an
    error message for a fatal render error. Each job reports one partial
    progress snapshot before its terminal one.
    """

    provider = "fake"

    def __init__(self, decide: Optional[Callable[[str], Optional[str]]] = None) -> None:
        self.decide = decide or (lambda code: None)
        self.submitted: List[str] = []
        self.durations: List[int] = []
        self.compositions: List[List[Shot]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._jobs: Dict[str, Optional[str]] = {}
        self._polls: Dict[str, int] = {}

    def _start(self, outcome: Optional[str]) -> JobSubmission:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        job_id = f"job-{len(self._jobs) + 1}"
        self._jobs[job_id] = outcome
        self._polls[job_id] = 0
        return JobSubmission(success=True, job=RenderJob(job_id=job_id, bucket_name="bucket", region="us-east-1"))

    async def submit(self, code: str, duration_frames: int) -> JobSubmission:
        await asyncio.sleep(0)
        self.submitted.append(code)
        self.durations.append(duration_frames)
        return self._start(self.decide(code))

    async def submit_composition(self, shots: Sequence[Shot]) -> JobSubmission:
        self.compositions.append(list(shots))
        return self._start(None)

    async def get_progress(self, job: RenderJob) -> ProgressSnapshot:
        await asyncio.sleep(0)
        self._polls[job.job_id] += 1
        if self._polls[job.job_id] == 1:
            return ProgressSnapshot(done=False, overall_progress=0.5)

        self.in_flight -= 1
        outcome = self._jobs[job.job_id]
        if outcome is None:
            return ProgressSnapshot(done=True, overall_progress=1.0, output_file=f"https://cdn.test/{job.job_id}.mp4")
        return ProgressSnapshot(fatal_error=True, overall_progress=0.5, errors=[{"message": outcome}])


class ScriptedGenerator(BaseCodeGenerator):
    """Code generator fake speaking the SSE framing; records every request."""

    name = "fake"

    def __init__(self, codes: Optional[Sequence[str]] = None, fail_with: Optional[str] = None) -> None:
        self.requests = []
        self._codes = list(codes or [])
        self.fail_with = fail_with

    async def stream(self, request):
        self.requests.append(request)
        if self.fail_with:
            yield encode_sse(CodeStreamEvent(type="error", content=self.fail_with))
            return
        code = self._codes.pop(0) if self._codes else f"export default () => null; // v{len(self.requests)}"
        half = len(code) // 2
        yield encode_sse(CodeStreamEvent(type="code", content=code[:half]))
        yield encode_sse(CodeStreamEvent(type="code", content=code[half:]))
        yield encode_sse(CodeStreamEvent(type="done"))


def make_shot(number: int, *, code: Optional[str] = None, status: ShotStatus = ShotStatus.PENDING, **extra) -> Shot:
    return Shot(
        id=f"s{number}",
        shot_number=number,
        description=f"shot {number}",
        visual_elements=[f"element {number}"],
        duration_frames=90,
        code=code,
        status=status,
        **extra,
    )


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_settings() -> PipelineSettings:
    return PipelineSettings(
        poll_interval_s=3.0,
        max_poll_attempts=120,
        stitch_max_poll_attempts=200,
        inter_job_delay_s=3.0,
        max_autofix_attempts=2,
        generation_spacing_s=1.0,
    )


@pytest.fixture
def backend_cls():
    return ScriptedBackend


@pytest.fixture
def generator_cls():
    return ScriptedGenerator


@pytest.fixture
def shot_factory():
    return make_shot
