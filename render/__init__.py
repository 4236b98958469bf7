"""Render job client, failure classification and final stitching."""

from .classifier import FailureKind, classify_failure
from .job_client import RenderJobClient, RenderJobResult
from .stitcher import Stitcher

__all__ = [
    "FailureKind",
    "RenderJobClient",
    "RenderJobResult",
    "Stitcher",
    "classify_failure",
]
