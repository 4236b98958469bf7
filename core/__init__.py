"""Core contracts and shared types for the shot pipeline."""

from .contracts import (
    FPS,
    NarrativeTheme,
    NeighborShotContext,
    Shot,
    ShotCodeRequest,
    ShotDescriptor,
    ShotStatus,
    StoryboardResponse,
    VisualTheme,
)

__all__ = [
    "FPS",
    "NarrativeTheme",
    "NeighborShotContext",
    "Shot",
    "ShotCodeRequest",
    "ShotDescriptor",
    "ShotStatus",
    "StoryboardResponse",
    "VisualTheme",
]
