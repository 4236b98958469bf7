"""
LLM Module
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .anthropic_llm import AnthropicLLM
from .factory import get_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "AnthropicLLM",
    "get_llm",
]
