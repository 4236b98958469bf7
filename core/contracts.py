"""Canonical data contracts for storyboard shots and their render lifecycle."""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


FPS = 30


class ShotStatus(str, Enum):
    """Lifecycle state of one shot."""

    PENDING = "pending"
    GENERATING = "generating"
    CODE_READY = "code_ready"
    RENDERING = "rendering"
    COMPLETE = "complete"
    ERROR = "error"


class _StoryboardModel(BaseModel):
    """Accepts the camelCase keys emitted by the storyboard generator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VisualTheme(_StoryboardModel):
    """Shared look of every shot in a storyboard."""

    colors: List[str] = Field(default_factory=list)
    color_description: str = ""
    typography: str = ""
    animation_style: str = ""
    background_style: str = ""
    visual_anchors: List[str] = Field(default_factory=list)


class NarrativeTheme(_StoryboardModel):
    """Shared story arc of every shot in a storyboard."""

    core_message: str = ""
    story_arc: str = ""
    emotional_journey: str = ""
    narrative_style: str = ""
    tonality: str = ""


class Shot(BaseModel):
    """One independently generated and rendered segment of the final video."""

    id: str
    shot_number: int = Field(ge=1)
    description: str
    visual_elements: List[str] = Field(default_factory=list)
    duration_frames: int = Field(gt=0)
    code: Optional[str] = None
    status: ShotStatus = ShotStatus.PENDING
    video_url: Optional[str] = None
    error: Optional[str] = None
    narrative_role: Optional[str] = None
    narrative_connection: Optional[str] = None
    key_message: Optional[str] = None
    emotional_tone: Optional[str] = None

    @field_validator("id", "description", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text

    @model_validator(mode="after")
    def _status_consistency(self) -> "Shot":
        if self.status == ShotStatus.COMPLETE and (not self.code or not self.video_url):
            raise ValueError("complete shot requires code and video_url")
        if self.status in {ShotStatus.PENDING, ShotStatus.GENERATING} and self.video_url:
            raise ValueError(f"{self.status.value} shot cannot carry a video_url")
        if self.status == ShotStatus.ERROR and not self.error:
            raise ValueError("error shot requires an error message")
        if self.status != ShotStatus.ERROR and self.error:
            raise ValueError("error message is only allowed in error status")
        return self

    @property
    def duration_seconds(self) -> float:
        return self.duration_frames / float(FPS)


class ShotDescriptor(_StoryboardModel):
    """Storyboard generator output for one shot, before it becomes a Shot."""

    shot_number: int
    description: str
    visual_elements: List[str] = Field(default_factory=list)
    suggested_duration: float = Field(gt=0, description="seconds")
    narrative_role: Optional[str] = None
    narrative_connection: Optional[str] = None
    key_message: Optional[str] = None
    emotional_tone: Optional[str] = None


class StoryboardResponse(_StoryboardModel):
    """Structured storyboard: ordered shot descriptors plus shared themes."""

    visual_theme: Optional[VisualTheme] = None
    narrative_theme: Optional[NarrativeTheme] = None
    shots: List[ShotDescriptor] = Field(default_factory=list)
    total_duration: float = 0.0


class NeighborShotContext(BaseModel):
    """Summary of the shot before or after the one being generated."""

    shot_number: int
    key_message: str = ""
    description: str


class ShotCodeRequest(BaseModel):
    """Everything the code generator receives for one shot."""

    description: str
    visual_elements: List[str] = Field(default_factory=list)
    duration_frames: int = Field(gt=0)
    shot_number: int = 1
    total_shots: int = 1
    previous_code: Optional[str] = None
    visual_theme: Optional[VisualTheme] = None
    narrative_theme: Optional[NarrativeTheme] = None
    narrative_role: Optional[str] = None
    narrative_connection: Optional[str] = None
    key_message: Optional[str] = None
    emotional_tone: Optional[str] = None
    previous_shot: Optional[NeighborShotContext] = None
    next_shot: Optional[NeighborShotContext] = None
