"""
Utils Module
"""
from .logger import console, setup_logger
from .exceptions import (
    ShotReelError,
    ConfigurationError,
    RenderBackendError,
    CodeGenerationError,
    StoryboardError,
    ShotNotFoundError,
    InvalidTransitionError,
)

__all__ = [
    "console",
    "setup_logger",
    "ShotReelError",
    "ConfigurationError",
    "RenderBackendError",
    "CodeGenerationError",
    "StoryboardError",
    "ShotNotFoundError",
    "InvalidTransitionError",
]
