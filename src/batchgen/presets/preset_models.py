"""Preset data structures."""

from __future__ import annotations

import re
from dataclasses import dataclass

ANGLE_TEMPLATE_KEY = "angle_generation"
COLOR_TEMPLATE_KEY = "colorization"

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True, slots=True)
class AnglePreset:
    angle_key: str
    angle_label: str
    angle_desc: str
    order: int = 0


@dataclass(frozen=True, slots=True)
class ColorPreset:
    color_key: str
    color_label: str
    prompt_value: str


@dataclass(frozen=True, slots=True)
class PromptTemplate:
    key: str
    prompt_template: str
    description: str = ""


def build_prompt(template: str, variables: dict[str, str]) -> str:
    """Substitute ``{{NAME}}`` placeholders; unknown names are left as-is."""
    return _PLACEHOLDER.sub(lambda match: variables.get(match.group(1), match.group(0)), template).strip()
