from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a canvas settings file is unreadable or inconsistent."""


@dataclass(frozen=True)
class CanvasSettings:
    """
    Geometry of the virtual canvas.

    All lengths are logical units. `padding` is added on every side of the
    content box so free dragging does not visibly reach an edge.
    """

    padding: float = 1500.0
    min_width: float = 4000.0
    min_height: float = 3000.0
    item_width: float = 280.0
    item_height: float = 120.0
    edge_margin: float = 40.0
    stack_gap: float = 60.0
    min_zoom: float = 0.3
    max_zoom: float = 2.0
    default_zoom: float = 1.0

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value):
                raise ConfigError(f"{f.name}: expected a finite number, got {value!r}")
            if value < 0:
                raise ConfigError(f"{f.name}: expected a non-negative number, got {value!r}")

        if self.item_width <= 0 or self.item_height <= 0:
            raise ConfigError("item_width and item_height must be positive")
        if self.min_zoom <= 0 or self.min_zoom > self.max_zoom:
            raise ConfigError(f"zoom range [{self.min_zoom}, {self.max_zoom}] is invalid")
        if not self.min_zoom <= self.default_zoom <= self.max_zoom:
            raise ConfigError(f"default_zoom {self.default_zoom} lies outside [{self.min_zoom}, {self.max_zoom}]")
        if 2 * self.edge_margin >= self.padding:
            raise ConfigError("edge_margin must be smaller than half the padding")
        if self.min_width < self.item_width + 2 * self.edge_margin:
            raise ConfigError("min_width must fit one item plus both edge margins")
        if self.min_height < self.item_height + 2 * self.edge_margin:
            raise ConfigError("min_height must fit one item plus both edge margins")


DEFAULT_SETTINGS = CanvasSettings()


def load_settings(path: str | Path | None) -> CanvasSettings:
    """
    Load canvas settings from a YAML mapping, falling back to defaults.

    A missing path returns the defaults. Unknown keys and non-numeric values
    are rejected so typos do not silently fall back.
    """

    if path is None:
        return DEFAULT_SETTINGS

    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"settings file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML ({exc})") from exc

    settings = parse_settings(raw, source=str(path))
    logger.debug("Loaded canvas settings from %s: %s", path, settings)
    return settings


def parse_settings(data: Any, source: str = "settings") -> CanvasSettings:
    if data is None:
        return DEFAULT_SETTINGS
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected mapping at top level")

    canvas = data.get("canvas", data)
    if not isinstance(canvas, dict):
        raise ConfigError(f"{source}.canvas: expected mapping")

    allowed = {f.name for f in fields(CanvasSettings)}
    extras = sorted(set(canvas.keys()) - allowed)
    if extras:
        raise ConfigError(f"{source}: unexpected fields {extras}")

    overrides: dict[str, float] = {}
    for key, value in canvas.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{source}.{key}: expected number")
        overrides[key] = float(value)

    settings = replace(DEFAULT_SETTINGS, **overrides)
    settings.validate()
    return settings
