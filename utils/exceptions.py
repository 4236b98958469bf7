"""
Custom Exceptions
"""


class ShotReelError(Exception):
    """Base error for the shot pipeline."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ShotReelError):
    """Required service configuration is missing."""
    pass


class RenderBackendError(ShotReelError):
    """The render service could not be reached or answered with a failure."""

    def __init__(self, message: str, status_code: int = None, **kwargs):
        super().__init__(message, kwargs)
        self.status_code = status_code


class CodeGenerationError(ShotReelError):
    """Shot code generation failed or produced an error payload."""
    pass


class StoryboardError(ShotReelError):
    """Storyboard generation or parsing failed."""
    pass


class ShotNotFoundError(ShotReelError, KeyError):
    """No shot with the given id."""

    def __init__(self, shot_id: str):
        super().__init__(f"Shot not found: {shot_id}", {"shot_id": shot_id})
        self.shot_id = shot_id

    def __str__(self):
        return self.message


class InvalidTransitionError(ShotReelError, ValueError):
    """A shot status change outside the lifecycle state machine."""

    def __init__(self, shot_id: str, current: str, target: str):
        super().__init__(
            f"Invalid shot transition {current} -> {target}",
            {"shot_id": shot_id},
        )
        self.shot_id = shot_id
        self.current = current
        self.target = target
