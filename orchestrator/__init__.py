"""Shot lifecycle, render queue and pipeline orchestration."""

from .autofix import AutoFixController
from .queue import RenderQueueEntry, ShotOutcome, ShotRenderQueue
from .service import ShotPipeline, get_default_pipeline
from .store import ALLOWED_TRANSITIONS, ShotLifecycleStore

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AutoFixController",
    "RenderQueueEntry",
    "ShotLifecycleStore",
    "ShotOutcome",
    "ShotPipeline",
    "ShotRenderQueue",
    "get_default_pipeline",
]
