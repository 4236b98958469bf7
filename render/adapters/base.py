"""Render backend abstractions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from core import Shot


@dataclass
class RenderJob:
    """One submitted render, alive until its terminal poll result."""

    job_id: str
    bucket_name: str
    region: str
    progress: float = 0.0


@dataclass
class JobSubmission:
    """Outcome of a job-submission call."""

    success: bool
    job: Optional[RenderJob] = None
    error: Optional[str] = None
    config_error: bool = False


@dataclass
class ProgressSnapshot:
    """One progress poll answer from the backend."""

    done: bool = False
    overall_progress: float = 0.0
    output_file: Optional[str] = None
    fatal_error: bool = False
    errors: List[Any] = field(default_factory=list)


class BaseRenderBackend:
    """Base backend that can be replaced by the cloud service or mocks."""

    provider = "base"

    def is_configured(self) -> bool:
        return True

    async def submit(self, code: str, duration_frames: int) -> JobSubmission:
        raise NotImplementedError

    async def submit_composition(self, shots: Sequence[Shot]) -> JobSubmission:
        raise NotImplementedError

    async def get_progress(self, job: RenderJob) -> ProgressSnapshot:
        """Raise ``RenderBackendError`` when progress cannot be read."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
