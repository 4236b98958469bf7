"""Render backend adapters package."""

from .base import BaseRenderBackend, JobSubmission, ProgressSnapshot, RenderJob
from .lambda_backend import LambdaRenderBackend
from .source import strip_code_fences

__all__ = [
    "BaseRenderBackend",
    "JobSubmission",
    "LambdaRenderBackend",
    "ProgressSnapshot",
    "RenderJob",
    "strip_code_fences",
]
