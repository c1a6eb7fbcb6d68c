"""Read-only lookup of presets and prompt templates."""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from .preset_errors import PresetNotFound, PromptTemplateNotFound
from .preset_models import AnglePreset, ColorPreset, PromptTemplate

logger = logging.getLogger(__name__)

ANGLE_PRESETS_FILE = "angle_presets.csv"
COLOR_PRESETS_FILE = "color_presets.csv"
PROMPT_TEMPLATES_FILE = "prompt_templates.csv"


class PresetStore(ABC):
    """Interface consumed by the batch orchestrator."""

    @abstractmethod
    def get_angle(self, angle_key: str) -> AnglePreset:
        """Return the angle preset or raise :class:`PresetNotFound`."""

    @abstractmethod
    def get_color(self, color_key: str) -> ColorPreset:
        """Return the color preset or raise :class:`PresetNotFound`."""

    @abstractmethod
    def get_template(self, key: str) -> PromptTemplate:
        """Return the template or raise :class:`PromptTemplateNotFound`."""

    @abstractmethod
    def list_angles(self) -> list[AnglePreset]:
        """Return angle presets in display order."""

    @abstractmethod
    def list_colors(self) -> list[ColorPreset]:
        """Return color presets."""


class InMemoryPresetStore(PresetStore):
    def __init__(
        self,
        *,
        angles: Iterable[AnglePreset] = (),
        colors: Iterable[ColorPreset] = (),
        templates: Iterable[PromptTemplate] = (),
    ) -> None:
        self._angles = {preset.angle_key: preset for preset in angles}
        self._colors = {preset.color_key: preset for preset in colors}
        self._templates = {template.key: template for template in templates}

    def get_angle(self, angle_key: str) -> AnglePreset:
        try:
            return self._angles[angle_key]
        except KeyError:
            raise PresetNotFound("angle", angle_key) from None

    def get_color(self, color_key: str) -> ColorPreset:
        try:
            return self._colors[color_key]
        except KeyError:
            raise PresetNotFound("color", color_key) from None

    def get_template(self, key: str) -> PromptTemplate:
        try:
            return self._templates[key]
        except KeyError:
            raise PromptTemplateNotFound(key) from None

    def list_angles(self) -> list[AnglePreset]:
        return sorted(self._angles.values(), key=lambda preset: preset.order)

    def list_colors(self) -> list[ColorPreset]:
        return list(self._colors.values())


class CsvPresetStore(InMemoryPresetStore):
    """Presets loaded once from the three CSV sheets in ``directory``.

    Rows whose ``enabled`` column is not truthy are skipped; angle presets are
    ordered by their ``order`` column.
    """

    @classmethod
    def from_directory(cls, directory: Path) -> "CsvPresetStore":
        angle_rows = _read_rows(directory / ANGLE_PRESETS_FILE)
        color_rows = _read_rows(directory / COLOR_PRESETS_FILE)
        template_rows = _read_rows(directory / PROMPT_TEMPLATES_FILE)

        angles = [
            AnglePreset(
                angle_key=row.get("angle_key", ""),
                angle_label=row.get("angle_label", ""),
                angle_desc=row.get("angle_desc", ""),
                order=_parse_int(row.get("order")),
            )
            for row in angle_rows
            if _is_enabled(row) and row.get("angle_key")
        ]
        colors = [
            ColorPreset(
                color_key=row.get("color_key", ""),
                color_label=row.get("color_label", ""),
                prompt_value=row.get("prompt_value", ""),
            )
            for row in color_rows
            if _is_enabled(row) and row.get("color_key")
        ]
        templates = [
            PromptTemplate(
                key=row.get("key", ""),
                prompt_template=row.get("prompt_template", ""),
                description=row.get("description", ""),
            )
            for row in template_rows
            if row.get("key")
        ]
        logger.info(
            "presets.loaded",
            extra={"angles": len(angles), "colors": len(colors), "templates": len(templates)},
        )
        return cls(angles=angles, colors=colors, templates=templates)


def _read_rows(path: Path) -> list[dict[str, str]]:
    if not path.exists():
        logger.warning("presets.file_missing", extra={"path": str(path)})
        return []
    with path.open(newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        return [
            {(key or "").strip(): (value or "").strip() for key, value in row.items()}
            for row in reader
        ]


def _is_enabled(row: dict[str, str]) -> bool:
    return row.get("enabled", "TRUE").upper() in {"TRUE", "1", "YES"}


def _parse_int(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0
