from __future__ import annotations

import json

import httpx
import pytest

from config import get_settings
from core import Shot, ShotStatus
from render.adapters import LambdaRenderBackend, RenderJob, strip_code_fences
from render.adapters.lambda_backend import CONFIG_ERROR_MESSAGE
from utils.exceptions import RenderBackendError


def _backend(handler, **kwargs) -> LambdaRenderBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://render.test")
    params = {"region": "us-east-1", "function_name": "remotion-render"}
    params.update(kwargs)
    return LambdaRenderBackend(client, **params)


@pytest.mark.asyncio
async def test_submit_posts_unfenced_code_and_returns_job() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"renderId": "r-1", "bucketName": "bucket-a", "region": "us-east-1"})

    backend = _backend(handler)
    submission = await backend.submit("```tsx\nexport default () => null;\n```", 150)

    assert submission.success is True
    assert submission.job.job_id == "r-1"
    assert submission.job.bucket_name == "bucket-a"
    assert captured["path"] == "/api/render"
    assert captured["body"] == {
        "code": "export default () => null;",
        "duration": 150,
        "region": "us-east-1",
        "functionName": "remotion-render",
    }


@pytest.mark.asyncio
async def test_submit_error_surfaces_service_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "Rate Exceeded"})

    submission = await _backend(handler).submit("code", 90)
    assert submission.success is False
    assert submission.error == "Rate Exceeded"
    assert submission.config_error is False


@pytest.mark.asyncio
async def test_submit_error_without_body_is_generic() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    submission = await _backend(handler).submit("code", 90)
    assert submission.error == "Failed to start render"


@pytest.mark.asyncio
async def test_submit_transport_error_is_a_failed_submission() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    submission = await _backend(handler).submit("code", 90)
    assert submission.success is False
    assert "connection refused" in submission.error


@pytest.mark.asyncio
async def test_missing_configuration_is_a_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REMOTION_AWS_REGION", raising=False)
    monkeypatch.delenv("REMOTION_LAMBDA_FUNCTION_NAME", raising=False)
    get_settings.cache_clear()
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    try:
        backend = _backend(handler, region=None, function_name=None)
        submission = await backend.submit("code", 90)
    finally:
        get_settings.cache_clear()

    assert backend.is_configured() is False
    assert submission.success is False
    assert submission.config_error is True
    assert submission.error == CONFIG_ERROR_MESSAGE
    assert calls == []


@pytest.mark.asyncio
async def test_get_progress_maps_fields() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        return httpx.Response(
            200,
            json={
                "done": False,
                "overallProgress": 0.35,
                "fatalErrorEncountered": True,
                "errors": [{"message": "TypeError: boom"}],
            },
        )

    snapshot = await _backend(handler).get_progress(RenderJob(job_id="r-9", bucket_name="b", region="eu-west-1"))

    assert seen == {"renderId": "r-9", "bucketName": "b", "region": "eu-west-1"}
    assert snapshot.overall_progress == 0.35
    assert snapshot.fatal_error is True
    assert snapshot.errors == [{"message": "TypeError: boom"}]
    assert snapshot.output_file is None


@pytest.mark.asyncio
async def test_get_progress_http_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "nope"})

    with pytest.raises(RenderBackendError) as exc_info:
        await _backend(handler).get_progress(RenderJob(job_id="r", bucket_name="b", region="r"))
    assert str(exc_info.value) == "Failed to get render progress"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_submit_composition_orders_payload() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"renderId": "stitch-1", "bucketName": "b"})

    shots = [
        Shot(id="a", shot_number=1, description="one", duration_frames=90, code="A",
             status=ShotStatus.COMPLETE, video_url="https://cdn.test/a.mp4"),
        Shot(id="b", shot_number=2, description="two", duration_frames=120, code="```\nB\n```",
             status=ShotStatus.COMPLETE, video_url="https://cdn.test/b.mp4"),
    ]
    submission = await _backend(handler).submit_composition(shots)

    assert submission.success is True
    assert captured["path"] == "/api/render/composition"
    assert captured["body"]["shots"] == [
        {"shotNumber": 1, "code": "A", "duration": 90},
        {"shotNumber": 2, "code": "B", "duration": 120},
    ]


def test_strip_code_fences() -> None:
    assert strip_code_fences("```tsx\nconst a = 1;\n```") == "const a = 1;"
    assert strip_code_fences("```\nconst a = 1;") == "const a = 1;"
    assert strip_code_fences("  const a = 1;  ") == "const a = 1;"
