"""Cloud render backend reached through the render service HTTP API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from config import get_render_settings
from core import Shot
from utils.exceptions import RenderBackendError

from .base import BaseRenderBackend, JobSubmission, ProgressSnapshot, RenderJob
from .source import strip_code_fences


logger = logging.getLogger(__name__)

CONFIG_ERROR_MESSAGE = (
    "Lambda not configured. Please set REMOTION_AWS_REGION and "
    "REMOTION_LAMBDA_FUNCTION_NAME environment variables."
)


class LambdaRenderBackend(BaseRenderBackend):
    """Adapter boundary for the serverless render service."""

    provider = "remotion-lambda"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        service_url: Optional[str] = None,
        region: Optional[str] = None,
        function_name: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        settings = get_render_settings()
        self.service_url = str(service_url or settings.service_url or "").strip().rstrip("/")
        self.region = str(region or settings.aws_region or "").strip()
        self.function_name = str(function_name or settings.lambda_function_name or "").strip()
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.request_timeout_s)

        self._client = client
        self._owns_client = client is None

    def is_configured(self) -> bool:
        return bool(self.region and self.function_name)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.service_url, timeout=self.timeout_s)
        return self._client

    async def submit(self, code: str, duration_frames: int) -> JobSubmission:
        if not self.is_configured():
            return JobSubmission(success=False, error=CONFIG_ERROR_MESSAGE, config_error=True)

        payload = {
            "code": strip_code_fences(code),
            "duration": int(duration_frames),
            "region": self.region,
            "functionName": self.function_name,
        }
        return await self._submit("/api/render", payload, generic_error="Failed to start render")

    async def submit_composition(self, shots: Sequence[Shot]) -> JobSubmission:
        if not self.is_configured():
            return JobSubmission(success=False, error=CONFIG_ERROR_MESSAGE, config_error=True)

        payload = {
            "shots": [
                {
                    "shotNumber": shot.shot_number,
                    "code": strip_code_fences(shot.code or ""),
                    "duration": shot.duration_frames,
                }
                for shot in shots
            ],
            "region": self.region,
            "functionName": self.function_name,
        }
        return await self._submit("/api/render/composition", payload, generic_error="Failed to stitch video")

    async def get_progress(self, job: RenderJob) -> ProgressSnapshot:
        params = {
            "renderId": job.job_id,
            "bucketName": job.bucket_name,
            "region": job.region,
        }
        try:
            response = await self._get_client().get("/api/render/progress", params=params)
        except httpx.TimeoutException as exc:
            raise RenderBackendError("render progress timeout") from exc
        except httpx.RequestError as exc:
            raise RenderBackendError(f"render progress request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RenderBackendError("Failed to get render progress", status_code=response.status_code)

        data = self._json(response)
        errors = data.get("errors") or []
        if not isinstance(errors, list):
            errors = [errors]
        return ProgressSnapshot(
            done=bool(data.get("done")),
            overall_progress=float(data.get("overallProgress") or 0.0),
            output_file=str(data.get("outputFile") or "").strip() or None,
            fatal_error=bool(data.get("fatalErrorEncountered")),
            errors=errors,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _submit(self, path: str, payload: Dict[str, Any], *, generic_error: str) -> JobSubmission:
        try:
            response = await self._get_client().post(path, json=payload)
        except httpx.TimeoutException:
            return JobSubmission(success=False, error="render submission timeout")
        except httpx.RequestError as exc:
            return JobSubmission(success=False, error=f"render submission failed: {exc}")

        data = self._json(response)
        if response.status_code >= 400:
            message = str(data.get("error") or "").strip() or generic_error
            return JobSubmission(success=False, error=message, config_error=bool(data.get("configError")))

        job_id = str(data.get("renderId") or "").strip()
        if not job_id:
            return JobSubmission(success=False, error="render service response missing renderId")

        job = RenderJob(
            job_id=job_id,
            bucket_name=str(data.get("bucketName") or "").strip(),
            region=str(data.get("region") or self.region).strip(),
        )
        logger.info("render_submitted job_id=%s bucket=%s region=%s", job.job_id, job.bucket_name, job.region)
        return JobSubmission(success=True, job=job)

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return dict(data) if isinstance(data, dict) else {}
