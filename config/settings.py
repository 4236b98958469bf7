"""
Settings Configuration
pydantic-settings based configuration for the render service, the
pipeline timings and the code-generation LLM.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class RenderSettings(BaseSettings):
    """Cloud render backend configuration"""
    aws_region: Optional[str] = Field(default=None, description="Render function region")
    lambda_function_name: Optional[str] = Field(default=None, description="Render function name")
    service_url: str = Field(default="http://localhost:3000", description="Base URL of the render service")
    request_timeout_s: float = Field(default=300.0, description="HTTP timeout for submit/progress calls")

    class Config:
        env_prefix = "REMOTION_"


class PipelineSettings(BaseSettings):
    """Queue, polling and auto-fix timings"""
    poll_interval_s: float = Field(default=3.0, description="Delay between progress polls")
    max_poll_attempts: int = Field(default=120, description="Poll cap for single-shot renders")
    stitch_max_poll_attempts: int = Field(default=200, description="Poll cap for the final stitch render")
    inter_job_delay_s: float = Field(default=3.0, description="Spacing between queued render jobs")
    max_autofix_attempts: int = Field(default=2, description="Automatic code repairs per shot")
    generation_spacing_s: float = Field(default=1.0, description="Spacing between successive code generations")

    class Config:
        env_prefix = "PIPELINE_"


class LLMSettings(BaseSettings):
    """Code / storyboard generation LLM"""
    provider: str = Field(default="anthropic", description="LLM provider")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=4096, description="Max generated tokens")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API Key")
    codegen_service_url: Optional[str] = Field(default=None, description="Remote generate-shot SSE endpoint")

    class Config:
        env_prefix = "LLM_"


class Settings(BaseSettings):
    """Root settings aggregating every sub-configuration"""

    render: RenderSettings = Field(default_factory=RenderSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying an optional .env file (config/.env by default)"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            render=RenderSettings(),
            pipeline=PipelineSettings(),
            llm=LLMSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_render_settings() -> RenderSettings:
    return get_settings().render


def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_llm_settings() -> LLMSettings:
    return get_settings().llm
