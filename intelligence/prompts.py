"""
Prompt builders for shot code generation and automatic repair.
"""
from __future__ import annotations

import re
from typing import List

from core import FPS, ShotCodeRequest


SHOT_SYSTEM_PROMPT = """You write self-contained Remotion (React + TypeScript) video components.

Rules:
- Export exactly one component with `export default function <Name>()`.
- Import only from 'react' and 'remotion'.
- Drive every animation from useCurrentFrame(); the composition runs at 30 fps.
- interpolate() inputRange values must be strictly increasing.
- Only use Easing.bezier(...) or the Easing presets (linear, ease, quad, cubic).
- Keep spring() configs physical: damping 8-15, stiffness 80-120, mass 0.3-1.2.
- Return only the component code, with no explanations."""


def _visual_elements(elements: List[str]) -> str:
    return "\n".join(f"{idx}. {item}" for idx, item in enumerate(elements, start=1)) or "(none specified)"


def _narrative_section(request: ShotCodeRequest) -> str:
    theme = request.narrative_theme
    if theme is None:
        return ""

    lines = [
        "",
        "NARRATIVE CONSISTENCY:",
        f"Core message: {theme.core_message}",
        f"Story arc: {theme.story_arc}",
        f"Emotional journey: {theme.emotional_journey}",
        f"This shot's role: {request.narrative_role or 'Advance the story'}",
    ]
    if request.narrative_connection:
        lines.append(f"Connection to previous shot: {request.narrative_connection}")
    lines.append(f"Key message of this shot: {request.key_message or 'Continue the narrative'}")
    lines.append(f"Emotional tone: {request.emotional_tone or 'Continue the emotional progression'}")
    if request.previous_shot is not None:
        lines.append(
            f"Previous shot ({request.previous_shot.shot_number}): "
            f"\"{request.previous_shot.key_message}\" - {request.previous_shot.description}. Build on it."
        )
    if request.next_shot is not None:
        lines.append(
            f"Next shot ({request.next_shot.shot_number}): "
            f"\"{request.next_shot.key_message}\" - {request.next_shot.description}. Set it up."
        )
    lines.append(f"Narrative style: {theme.narrative_style}")
    lines.append(f"Tonality: {theme.tonality}")
    return "\n".join(lines)


def _visual_section(request: ShotCodeRequest) -> str:
    theme = request.visual_theme
    if theme is None:
        return ""

    lines = [
        "",
        f"VISUAL CONSISTENCY (shot {request.shot_number} of {request.total_shots}):",
        f"Use only these colors: {', '.join(theme.colors)}",
        f"Color scheme: {theme.color_description}",
        f"Typography: {theme.typography}",
        f"Animation style: {theme.animation_style}",
        f"Background style: {theme.background_style}",
    ]
    if theme.visual_anchors:
        lines.append(f"Visual anchors to keep: {', '.join(theme.visual_anchors)}")
    return "\n".join(lines)


def build_shot_prompt(request: ShotCodeRequest) -> str:
    """User prompt for one shot; revises ``previous_code`` when present."""
    seconds = request.duration_frames / float(FPS)
    body = (
        f"Shot Description: {request.description}\n\n"
        f"Visual Elements:\n{_visual_elements(request.visual_elements)}\n\n"
        f"Duration: EXACTLY {request.duration_frames} frames ({seconds:g} seconds at {FPS}fps)\n\n"
        f"This is shot {request.shot_number} of {request.total_shots} in a multi-shot video sequence."
        f"{_narrative_section(request)}{_visual_section(request)}"
    )

    if request.previous_code:
        return (
            f"Here is the current Remotion component code:\n\n```tsx\n{request.previous_code}\n```\n\n"
            f"Please modify it according to this request:\n\n{body}\n\n"
            "Return ONLY the updated component code, no explanations."
        )
    return (
        f"Create a Remotion video component for:\n\n{body}\n\n"
        "Return ONLY the component code, no explanations."
    )


_NON_MONOTONIC = "inputrange must be strictly monotonically increasing"
_BAD_RANGE = re.compile(r"but got \[([\d.,\s-]+)\]")


def repair_guidance(error_message: str) -> str:
    """Corrective guidance for recognised recurring failure patterns ("" otherwise)."""
    text = str(error_message or "")
    lowered = text.lower()

    if _NON_MONOTONIC in lowered:
        match = _BAD_RANGE.search(text)
        bad = match.group(1).strip() if match else "unknown"
        return (
            "SPECIFIC FIX REQUIRED:\n"
            f"An interpolate() inputRange contains repeated or decreasing values: [{bad}].\n"
            "Every inputRange must be strictly increasing, e.g. [0, 30, 30, 60] -> [0, 30, 35, 60].\n"
            "Check ALL interpolate() calls and leave at least one frame (preferably 5+) between breakpoints."
        )
    if "easing is not a function" in lowered:
        return (
            "SPECIFIC FIX REQUIRED:\n"
            "An invalid easing function was used. Only use Easing.bezier(x1, y1, x2, y2) or the presets "
            "Easing.linear, Easing.ease, Easing.quad, Easing.cubic. Do not use Easing.out() or Easing.inOut()."
        )
    if "spring" in lowered or "damping" in lowered:
        return (
            "SPECIFIC FIX REQUIRED:\n"
            "spring() received an out-of-range config. Use damping 8-15, stiffness 80-120, mass 0.3-1.2."
        )
    return ""


def build_repair_description(description: str, error_message: str) -> str:
    """Shot description annotated with the render failure and any targeted guidance."""
    parts = [
        description,
        "",
        "CRITICAL ERROR - The previous code generated this error during rendering:",
        f"\"{error_message}\"",
    ]
    guidance = repair_guidance(error_message)
    if guidance:
        parts.extend(["", guidance])
    parts.extend(["", "REVIEW YOUR CODE CAREFULLY and fix the error. Return the corrected code."])
    return "\n".join(parts)


def build_edit_description(description: str, edit_prompt: str) -> str:
    return f"{description}\n\nEdit: {edit_prompt}"


STORYBOARD_SYSTEM_PROMPT = """You are a video storyboard creator. Break a video concept into 2-6 shots that tell one cohesive story.

Each shot lasts 3-15 seconds and needs a clear visual description, concrete visual elements
(text, objects, hex colors, effects), motion, and an emotional tone. Establish a narrative theme
and a visual theme first, then keep every shot consistent with both.

Respond with a single JSON object and nothing else:
{
  "narrativeTheme": {"coreMessage": "", "storyArc": "", "emotionalJourney": "", "narrativeStyle": "", "tonality": ""},
  "visualTheme": {"colors": ["#hex"], "colorDescription": "", "typography": "", "animationStyle": "",
                  "backgroundStyle": "", "visualAnchors": [""]},
  "shots": [{"shotNumber": 1, "description": "", "visualElements": [""], "suggestedDuration": 4,
             "narrativeRole": "", "narrativeConnection": "", "keyMessage": "", "emotionalTone": ""}],
  "totalDuration": 4
}"""


def build_storyboard_prompt(user_prompt: str) -> str:
    return (
        f"Create a video storyboard for the following concept:\n\n\"{user_prompt}\"\n\n"
        "Define the narrative theme (core message, story arc, emotional journey, style, tonality) and "
        "the visual theme (2-4 hex colors, typography, animation style, background, visual anchors), "
        "then 2-6 shots. Each shot has a narrative role, connects explicitly to the previous shot, "
        "delivers one key message and uses only theme colors. Return only the JSON object."
    )
