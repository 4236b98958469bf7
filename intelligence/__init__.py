"""
Intelligence Module
LLM abstraction, shot code generation and storyboard creation.
"""
from .llm import (
    BaseLLM,
    AnthropicLLM,
    get_llm,
)
from .codegen import (
    BaseCodeGenerator,
    CodeStreamEvent,
    LLMCodeGenerator,
    RemoteCodeGenerator,
    collect_code,
    encode_sse,
    get_code_generator,
    iter_sse_events,
)
from .prompts import (
    build_edit_description,
    build_repair_description,
    build_shot_prompt,
    repair_guidance,
)
from .storyboard import StoryboardGenerator, parse_storyboard, shots_from_storyboard

__all__ = [
    # LLM
    "BaseLLM",
    "AnthropicLLM",
    "get_llm",
    # Code generation
    "BaseCodeGenerator",
    "CodeStreamEvent",
    "LLMCodeGenerator",
    "RemoteCodeGenerator",
    "collect_code",
    "encode_sse",
    "get_code_generator",
    "iter_sse_events",
    # Prompts
    "build_edit_description",
    "build_repair_description",
    "build_shot_prompt",
    "repair_guidance",
    # Storyboard
    "StoryboardGenerator",
    "parse_storyboard",
    "shots_from_storyboard",
]
