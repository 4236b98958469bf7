from __future__ import annotations

import pytest

from core import ShotStatus, VisualTheme
from orchestrator import ShotPipeline
from render.adapters import BaseRenderBackend, JobSubmission, ProgressSnapshot, RenderJob
from render.job_client import RenderJobClient
from utils.exceptions import InvalidTransitionError

CODE_DEFECT = "TypeError: Cannot read properties of undefined"


def _pipeline(backend, generator, sleeps, settings, shot_factory, count: int = 1) -> ShotPipeline:
    client = RenderJobClient(
        backend,
        poll_interval_s=settings.poll_interval_s,
        max_poll_attempts=settings.max_poll_attempts,
        sleep=sleeps,
    )
    pipeline = ShotPipeline(client=client, generator=generator, settings=settings, sleep=sleeps)
    pipeline.store.replace_all([shot_factory(n) for n in range(1, count + 1)])
    return pipeline


async def _run(pipeline: ShotPipeline) -> None:
    await pipeline.generate_and_render_all()
    await pipeline.wait_until_settled()


def _events(pipeline: ShotPipeline, shot_id: str) -> list[str]:
    return [event["event"] for event in pipeline.store.list_events(shot_id)]


@pytest.mark.asyncio
async def test_all_shots_complete_in_order(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls()
    generator = generator_cls(codes=["code-a", "code-b", "code-c"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory, count=3)

    await _run(pipeline)

    shots = pipeline.store.list_shots()
    assert [shot.status for shot in shots] == [ShotStatus.COMPLETE] * 3
    assert len({shot.video_url for shot in shots}) == 3
    assert backend.submitted == ["code-a", "code-b", "code-c"]
    assert backend.max_in_flight == 1
    assert sleeps.calls.count(1.0) == 2
    assert _events(pipeline, "s2") == ["generating", "code_ready", "rendering", "complete"]


@pytest.mark.asyncio
async def test_code_requests_carry_themes_and_neighbors(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    generator = generator_cls()
    pipeline = _pipeline(backend_cls(), generator, sleeps, fast_settings, shot_factory, count=3)
    pipeline.visual_theme = VisualTheme(colors=["#101820", "#FEE715"])

    await _run(pipeline)

    middle = generator.requests[1]
    assert middle.shot_number == 2
    assert middle.total_shots == 3
    assert middle.previous_shot.shot_number == 1
    assert middle.next_shot.shot_number == 3
    assert middle.previous_code is None
    assert middle.visual_theme.colors == ["#101820", "#FEE715"]
    assert generator.requests[0].previous_shot is None


@pytest.mark.asyncio
async def test_code_defect_triggers_one_repair(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls(lambda code: CODE_DEFECT if code == "broken" else "Rate Exceeded")
    generator = generator_cls(codes=["broken", "repaired"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory)

    await _run(pipeline)

    assert pipeline.store.retry_count("s1") == 1
    assert _events(pipeline, "s1") == [
        "generating",
        "code_ready",
        "rendering",
        "error",
        "generating",
        "code_ready",
        "rendering",
        "error",
    ]
    repair = generator.requests[1]
    assert repair.previous_code == "broken"
    assert "CRITICAL ERROR" in repair.description
    assert CODE_DEFECT in repair.description
    assert backend.submitted == ["broken", "repaired"]


@pytest.mark.asyncio
async def test_successful_repair_clears_retry_counter(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls(lambda code: CODE_DEFECT if code == "broken" else None)
    generator = generator_cls(codes=["broken", "repaired"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory)

    await _run(pipeline)

    shot = pipeline.store.get("s1")
    assert shot.status == ShotStatus.COMPLETE
    assert shot.code == "repaired"
    assert pipeline.store.retry_count("s1") == 0


@pytest.mark.asyncio
async def test_repairs_stop_after_two_attempts(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls(lambda code: CODE_DEFECT)
    generator = generator_cls()
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory)

    await _run(pipeline)

    shot = pipeline.store.get("s1")
    assert shot.status == ShotStatus.ERROR
    assert shot.error == f"Code error after 2 attempts: {CODE_DEFECT}"
    # initial generation plus two repairs, nothing after the budget is spent
    assert len(generator.requests) == 3
    assert len(backend.submitted) == 3
    assert pipeline.store.retry_count("s1") == 2


@pytest.mark.asyncio
async def test_infrastructure_fault_is_not_repaired(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls(lambda code: "Rate Exceeded")
    generator = generator_cls()
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory)

    await _run(pipeline)

    shot = pipeline.store.get("s1")
    assert shot.status == ShotStatus.ERROR
    assert shot.error == "Rate Exceeded"
    assert len(generator.requests) == 1
    assert pipeline.store.retry_count("s1") == 0


@pytest.mark.asyncio
async def test_render_timeout_is_terminal(generator_cls, sleeps, fast_settings, shot_factory) -> None:
    class NeverDone(BaseRenderBackend):
        async def submit(self, code, duration_frames):
            return JobSubmission(success=True, job=RenderJob(job_id="r", bucket_name="b", region="r"))

        async def get_progress(self, job):
            return ProgressSnapshot(done=False, overall_progress=0.1)

    generator = generator_cls()
    pipeline = _pipeline(NeverDone(), generator, sleeps, fast_settings, shot_factory)

    await _run(pipeline)

    shot = pipeline.store.get("s1")
    assert shot.status == ShotStatus.ERROR
    assert "timeout" in shot.error.lower()
    assert len(generator.requests) == 1


@pytest.mark.asyncio
async def test_generation_failure_marks_only_that_shot(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls()
    generator = generator_cls(fail_with="overloaded_error")
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory, count=2)

    await _run(pipeline)

    shots = pipeline.store.list_shots()
    assert [shot.status for shot in shots] == [ShotStatus.ERROR, ShotStatus.ERROR]
    assert shots[0].error == "overloaded_error"
    assert backend.submitted == []


@pytest.mark.asyncio
async def test_manual_retry_reuses_existing_code(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls(lambda code: "Rate Exceeded")
    generator = generator_cls(codes=["stable"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory)
    await _run(pipeline)
    assert pipeline.store.get("s1").status == ShotStatus.ERROR

    backend.decide = lambda code: None
    await pipeline.retry_render("s1")
    await pipeline.wait_until_settled()

    shot = pipeline.store.get("s1")
    assert shot.status == ShotStatus.COMPLETE
    assert backend.submitted == ["stable", "stable"]
    assert len(generator.requests) == 1


def test_manual_retry_requires_code(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    pipeline = _pipeline(backend_cls(), generator_cls(), sleeps, fast_settings, shot_factory)
    with pytest.raises(ValueError):
        pipeline.retry_render("s1")


@pytest.mark.asyncio
async def test_regenerate_with_edit_stops_at_code_ready(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls()
    generator = generator_cls(codes=["first", "second"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory)
    await _run(pipeline)

    assert await pipeline.regenerate_shot("s1", "make it blue") is True

    shot = pipeline.store.get("s1")
    assert shot.status == ShotStatus.CODE_READY
    assert shot.code == "second"
    assert shot.video_url is None
    edit = generator.requests[1]
    assert edit.description == "shot 1\n\nEdit: make it blue"
    assert edit.previous_code == "first"
    assert backend.submitted == ["first"]


@pytest.mark.asyncio
async def test_stitch_uses_completed_shots_in_order(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls(lambda code: "Rate Exceeded" if code == "bad" else None)
    generator = generator_cls(codes=["a", "bad", "c"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory, count=3)
    await _run(pipeline)
    pipeline.reorder_shots(["s3", "s2", "s1"])

    result = await pipeline.stitch_final()

    assert result.success is True
    assert pipeline.final_video_url == result.video_url
    assert [shot.id for shot in backend.compositions[0]] == ["s3", "s1"]


@pytest.mark.asyncio
async def test_stitch_without_completed_shots(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    pipeline = _pipeline(backend_cls(), generator_cls(), sleeps, fast_settings, shot_factory)
    result = await pipeline.stitch_final()
    assert result.success is False
    assert result.error == "No completed shots to stitch"


def test_editing_operations_keep_numbering(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    pipeline = _pipeline(backend_cls(), generator_cls(), sleeps, fast_settings, shot_factory, count=3)
    pipeline.update_description("s2", "tighter copy")
    shots = pipeline.remove_shot("s1")
    assert [(shot.id, shot.shot_number) for shot in shots] == [("s2", 1), ("s3", 2)]
    assert shots[0].description == "tighter copy"


@pytest.mark.asyncio
async def test_shot_removed_during_generation_does_not_stop_the_rest(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    class RemovesWhileStreaming(generator_cls):
        pipeline = None

        async def stream(self, request):
            if request.shot_number == 1 and not self.requests:
                self.pipeline.remove_shot("s1")
            async for chunk in super().stream(request):
                yield chunk

    backend = backend_cls()
    generator = RemovesWhileStreaming(codes=["a", "b", "c"])
    pipeline = _pipeline(backend, generator, sleeps, fast_settings, shot_factory, count=3)
    generator.pipeline = pipeline

    await _run(pipeline)

    shots = pipeline.store.list_shots()
    assert [(shot.id, shot.shot_number, shot.status) for shot in shots] == [
        ("s2", 1, ShotStatus.COMPLETE),
        ("s3", 2, ShotStatus.COMPLETE),
    ]
    assert backend.submitted == ["b", "c"]


@pytest.mark.asyncio
async def test_shot_removed_during_failed_generation_is_dropped(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    class RemovesThenFails(generator_cls):
        pipeline = None

        async def stream(self, request):
            self.pipeline.remove_shot("s1")
            async for chunk in super().stream(request):
                yield chunk

    generator = RemovesThenFails(fail_with="overloaded_error")
    pipeline = _pipeline(backend_cls(), generator, sleeps, fast_settings, shot_factory)
    generator.pipeline = pipeline

    assert await pipeline.generate_shot_code("s1") is False
    assert pipeline.store.list_shots() == []


@pytest.mark.asyncio
async def test_render_batch_with_an_unready_shot_changes_nothing(backend_cls, generator_cls, sleeps, fast_settings, shot_factory) -> None:
    backend = backend_cls()
    pipeline = _pipeline(backend, generator_cls(), sleeps, fast_settings, shot_factory)
    pipeline.store.replace_all([shot_factory(1, code="ready", status=ShotStatus.CODE_READY), shot_factory(2)])

    with pytest.raises(InvalidTransitionError):
        pipeline.render_shots(["s1", "s2"])

    assert [shot.status for shot in pipeline.store.list_shots()] == [ShotStatus.CODE_READY, ShotStatus.PENDING]
    assert pipeline.queue.queue_length == 0

    await pipeline.render_shots(["s1"])
    await pipeline.wait_until_settled()
    assert pipeline.store.get("s1").status == ShotStatus.COMPLETE
    assert backend.submitted == ["ready"]
