from __future__ import annotations

import datetime as _dt
import json
import logging
import math
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .roadmap_models import UNPOSITIONED, Annotation, Phase, Position, Positioned, Roadmap, Step, new_id

logger = logging.getLogger(__name__)

LEGACY_PHASE_NAME = "Roadmap"


class RoadmapFormatError(Exception):
    """Raised when stored roadmap or annotation data cannot be interpreted."""


@dataclass(frozen=True)
class _Path:
    """Helper to produce readable data path strings like phases[0].steps[1]."""

    parts: tuple[str, ...] = ()

    def child(self, segment: str) -> "_Path":
        return _Path(self.parts + (segment,))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return ".".join(self.parts) if self.parts else "root"


@dataclass
class _Ids:
    """Ids seen so far in one id space (phases, steps or annotations)."""

    repair: bool = False
    seen: set[str] = field(default_factory=set)

    def register(self, value: str, path: _Path) -> str:
        if value in self.seen:
            if not self.repair:
                raise RoadmapFormatError(f"{path}: duplicate id '{value}'")
            fresh = new_id()
            logger.warning("%s: duplicate id %r replaced with %s", path, value, fresh)
            value = fresh
        self.seen.add(value)
        return value


def load_roadmap(path: str | Path) -> Roadmap:
    """
    Load a roadmap file, treating unusable data as "no data".

    Missing files, YAML/JSON syntax errors and malformed structures are
    logged and yield an empty roadmap.
    """

    raw = _read(path)
    try:
        return parse_roadmap(raw, repair_duplicates=True)
    except RoadmapFormatError as exc:
        logger.warning("Ignoring malformed roadmap in %s: %s", path, exc)
        return Roadmap()


def parse_roadmap(data: Any, *, repair_duplicates: bool = False) -> Roadmap:
    """
    Build a Roadmap from decoded JSON/YAML data, migrating older shapes.

    Accepted inputs:
    - a list of phases `{id, name, steps: [...]}` (current shape);
    - a flat list of steps, wrapped into a single phase;
    - a legacy project mapping carrying a `phases` list;
    - None, meaning no data.
    Steps without both `x` and `y` stay unpositioned. Duplicate ids are an
    error unless `repair_duplicates` is set, which gives the later item a
    fresh id instead.
    """

    path = _Path()
    if data is None:
        return Roadmap()

    if isinstance(data, dict):
        if "phases" not in data:
            raise RoadmapFormatError(f"{path}: expected a list of phases or a mapping with 'phases'")
        path = path.child("phases")
        data = data["phases"]
        if data is None:
            return Roadmap()

    if not isinstance(data, list):
        raise RoadmapFormatError(f"{path}: expected list")

    phase_ids = _Ids(repair_duplicates)
    step_ids = _Ids(repair_duplicates)

    phase_like = [_looks_like_phase(item) for item in data]
    if all(phase_like):
        phases = tuple(
            _parse_phase(item, _Path((f"phases[{idx}]",)), idx, phase_ids, step_ids)
            for idx, item in enumerate(data)
        )
        return Roadmap(phases=phases)

    if any(phase_like):
        raise RoadmapFormatError(f"{path}: mixes phases and bare steps")

    logger.info("Migrating flat step list (%d steps) into a single phase", len(data))
    steps = tuple(_parse_step(item, _Path((f"steps[{idx}]",)), step_ids) for idx, item in enumerate(data))
    return Roadmap(phases=(Phase(id=new_id(), name=LEGACY_PHASE_NAME, steps=steps),))


def dump_roadmap(roadmap: Roadmap) -> list[dict[str, Any]]:
    """Persisted shape: phases with steps; coordinates only for placed steps."""

    return [
        {
            "id": phase.id,
            "name": phase.name,
            "steps": [_dump_step(step) for step in phase.steps],
        }
        for phase in roadmap.phases
    ]


def save_roadmap(path: str | Path, roadmap: Roadmap) -> None:
    _write(path, dump_roadmap(roadmap))


def _looks_like_phase(item: Any) -> bool:
    return isinstance(item, dict) and "steps" in item


def _parse_phase(data: Any, path: _Path, index: int, phase_ids: _Ids, step_ids: _Ids) -> Phase:
    phase_id = _optional_id(data, path, phase_ids)

    name = data.get("name")
    if name is None:
        name = f"Phase {index + 1}"
    elif not isinstance(name, str):
        raise RoadmapFormatError(f"{path.child('name')}: expected string")

    steps_raw = data.get("steps")
    if steps_raw is None:
        steps_raw = []
    if not isinstance(steps_raw, list):
        raise RoadmapFormatError(f"{path.child('steps')}: expected list")

    steps = tuple(_parse_step(item, path.child(f"steps[{idx}]"), step_ids) for idx, item in enumerate(steps_raw))
    return Phase(id=phase_id, name=name, steps=steps)


def _parse_step(data: Any, path: _Path, step_ids: _Ids) -> Step:
    if isinstance(data, str):
        return Step(id=step_ids.register(new_id(), path), text=data)
    if not isinstance(data, dict):
        raise RoadmapFormatError(f"{path}: expected mapping or string for step")

    step_id = _optional_id(data, path, step_ids)

    text = data.get("text")
    if text is None:
        text = ""
    elif not isinstance(text, str):
        raise RoadmapFormatError(f"{path.child('text')}: expected string")

    completed = data.get("completed", False)
    if completed is None:
        completed = False
    elif not isinstance(completed, bool):
        raise RoadmapFormatError(f"{path.child('completed')}: expected boolean")

    return Step(id=step_id, text=text, completed=completed, position=_parse_position(data, path))


def _parse_position(data: dict[str, Any], path: _Path) -> Position:
    x = data.get("x")
    y = data.get("y")
    if x is None and y is None:
        return UNPOSITIONED

    for key, value in (("x", x), ("y", y)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise RoadmapFormatError(f"{path.child(key)}: expected finite number")

    if x is None or y is None:
        logger.warning("%s: only one coordinate stored; step treated as unpositioned", path)
        return UNPOSITIONED
    return Positioned(float(x), float(y))


def _dump_step(step: Step) -> dict[str, Any]:
    out: dict[str, Any] = {"id": step.id, "text": step.text, "completed": step.completed}
    if isinstance(step.position, Positioned):
        out["x"] = step.position.x
        out["y"] = step.position.y
    return out


def load_annotations(path: str | Path) -> tuple[Annotation, ...]:
    """Load stored annotations; unusable data is logged and treated as none."""

    raw = _read(path)
    try:
        return parse_annotations(raw, repair_duplicates=True)
    except RoadmapFormatError as exc:
        logger.warning("Ignoring malformed annotations in %s: %s", path, exc)
        return ()


def parse_annotations(data: Any, *, repair_duplicates: bool = False) -> tuple[Annotation, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise RoadmapFormatError("root: expected list of annotations")

    ids = _Ids(repair_duplicates)
    return tuple(_parse_annotation(item, _Path((f"[{idx}]",)), ids) for idx, item in enumerate(data))


def dump_annotations(annotations: tuple[Annotation, ...] | list[Annotation]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for a in annotations:
        item: dict[str, Any] = {"id": a.id, "text": a.text, "createdAt": _to_millis(a.created_at)}
        if a.step_id is not None:
            item["stepId"] = a.step_id
        if a.project_id is not None:
            item["projectId"] = a.project_id
        if a.scheduled_at is not None:
            item["scheduledAt"] = _to_millis(a.scheduled_at)
        if a.reminder_dismissed:
            item["reminderDismissed"] = True
        out.append(item)
    return out


def save_annotations(path: str | Path, annotations: tuple[Annotation, ...] | list[Annotation]) -> None:
    _write(path, dump_annotations(annotations))


def _parse_annotation(data: Any, path: _Path, ids: _Ids) -> Annotation:
    if not isinstance(data, dict):
        raise RoadmapFormatError(f"{path}: expected mapping for annotation")

    annotation_id = _optional_id(data, path, ids)

    text = data.get("text")
    if text is None:
        text = ""
    elif not isinstance(text, str):
        raise RoadmapFormatError(f"{path.child('text')}: expected string")

    created_raw = data.get("createdAt")
    if created_raw is None:
        created_at = _dt.datetime.now(_dt.timezone.utc)
    else:
        created_at = _parse_timestamp(created_raw, path.child("createdAt"))

    scheduled_raw = data.get("scheduledAt")
    scheduled_at = None if scheduled_raw is None else _parse_timestamp(scheduled_raw, path.child("scheduledAt"))

    dismissed = data.get("reminderDismissed", False)
    if dismissed is None:
        dismissed = False
    elif not isinstance(dismissed, bool):
        raise RoadmapFormatError(f"{path.child('reminderDismissed')}: expected boolean")

    return Annotation(
        id=annotation_id,
        text=text,
        created_at=created_at,
        step_id=_optional_ref(data, "stepId", path),
        project_id=_optional_ref(data, "projectId", path),
        scheduled_at=scheduled_at,
        reminder_dismissed=dismissed,
    )


def _parse_timestamp(value: Any, path: _Path) -> _dt.datetime:
    """Epoch milliseconds (stored shape) or an ISO-8601 string; naive values are UTC."""

    if isinstance(value, bool):
        raise RoadmapFormatError(f"{path}: expected epoch milliseconds or ISO-8601 string")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise RoadmapFormatError(f"{path}: expected finite timestamp")
        try:
            return _dt.datetime.fromtimestamp(value / 1000, tz=_dt.timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise RoadmapFormatError(f"{path}: timestamp out of range") from exc
    if isinstance(value, _dt.datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = _dt.datetime.fromisoformat(value)
        except ValueError as exc:
            raise RoadmapFormatError(f"{path}: expected epoch milliseconds or ISO-8601 string") from exc
    else:
        raise RoadmapFormatError(f"{path}: expected epoch milliseconds or ISO-8601 string")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_dt.timezone.utc)
    return parsed


def _to_millis(value: _dt.datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    return round(value.timestamp() * 1000)


def _optional_id(data: dict[str, Any], path: _Path, ids: _Ids) -> str:
    value = data.get("id")
    if value is None:
        value = new_id()
        logger.debug("%s: assigned missing id %s", path, value)
    elif isinstance(value, bool) or not isinstance(value, (str, int)):
        raise RoadmapFormatError(f"{path.child('id')}: expected string")
    return ids.register(str(value), path.child("id"))


def _optional_ref(data: dict[str, Any], key: str, path: _Path) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise RoadmapFormatError(f"{path.child(key)}: expected string")
    return value


def _read(path: str | Path) -> Any:
    """Decode a stored file: JSON for `.json` paths, YAML otherwise. None means no usable data."""

    try:
        with open(path, "r", encoding="utf-8") as fh:
            if Path(path).suffix.lower() == ".json":
                return json.load(fh)
            return yaml.safe_load(fh)
    except FileNotFoundError:
        logger.info("No stored data at %s", path)
        return None
    except (yaml.YAMLError, ValueError, OSError) as exc:
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        logger.warning("Unreadable data in %s: %s", path, exc)
        return None


def _write(path: str | Path, payload: Any) -> None:
    """Replace the stored file in one step; a failed save keeps the previous contents."""

    target = Path(path)
    if target.suffix.lower() == ".json":
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    else:
        text = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
    data = text.encode("utf-8")

    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
