"""
LLM Factory
Build the configured LLM instance.
"""
from typing import Optional
import logging

from utils.exceptions import ConfigurationError

from .base import BaseLLM
from .anthropic_llm import AnthropicLLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Get an LLM instance

    Reads LLM_* settings from the environment / config/.env; explicit
    arguments win.

    Example:
        llm = get_llm()
        llm = get_llm(model="claude-sonnet-4-20250514", temperature=0.2)
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = provider or settings.provider
    model = model or settings.model_name or DEFAULT_MODELS.get(provider)

    api_keys = {
        "anthropic": settings.anthropic_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)

    default_params = {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
    }
    for key, value in default_params.items():
        if key not in kwargs:
            kwargs[key] = value

    if provider == "anthropic":
        logger.debug("llm provider=%s model=%s", provider, model)
        return AnthropicLLM(
            model=model,
            api_key=api_key,
            **kwargs,
        )
    raise ConfigurationError(f"Unsupported LLM provider: {provider}", {"provider": provider})
