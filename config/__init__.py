"""
Configuration Management Module
"""
from .settings import (
    Settings,
    LLMSettings,
    PipelineSettings,
    RenderSettings,
    get_settings,
    get_llm_settings,
    get_pipeline_settings,
    get_render_settings,
)

__all__ = [
    "Settings",
    "LLMSettings",
    "PipelineSettings",
    "RenderSettings",
    "get_settings",
    "get_llm_settings",
    "get_pipeline_settings",
    "get_render_settings",
]
