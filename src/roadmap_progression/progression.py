from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Literal

from .flatten import find_ref, first_incomplete, flatten
from .roadmap_models import LinearRef, Phase, Roadmap, Step, new_id

logger = logging.getLogger(__name__)

InsertWhere = Literal["before", "after"]

DEFAULT_STEP_TEXT = "New step"


def focus_at(roadmap: Roadmap, index: int) -> Roadmap:
    """
    Move the focus to linear position `index` and return the new snapshot.

    - The index is clamped into [0, len - 1].
    - Every step is rewritten: completed iff its linear index is below the target.
    - Idempotent; a smaller index reopens later steps.
    - An empty roadmap is returned unchanged.
    """

    refs = flatten(roadmap)
    if not refs:
        logger.debug("focus_at(%s) on an empty roadmap; nothing to focus", index)
        return roadmap

    target = min(max(index, 0), len(refs) - 1)
    if target != index:
        logger.debug("focus_at clamped index %s to %s", index, target)
    return _rewrite_completion(roadmap, lambda ref: ref.linear_index < target)


def focus_step(roadmap: Roadmap, step_id: str) -> Roadmap:
    """Jump the focus to the given step, wherever it currently sits."""

    ref = find_ref(roadmap, step_id)
    if ref is None:
        logger.debug("focus_step: unknown step %r", step_id)
        return roadmap
    return focus_at(roadmap, ref.linear_index)


def complete_current(roadmap: Roadmap) -> Roadmap:
    """
    Complete the current step and everything before it.

    Flags after the current step are left as they are, so completion only
    grows. With no current step (all done or empty) the roadmap is unchanged.
    """

    current = first_incomplete(roadmap)
    if current is None:
        logger.debug("complete_current: no current step")
        return roadmap

    return _rewrite_completion(
        roadmap,
        lambda ref: True if ref.linear_index <= current.linear_index else ref.completed,
    )


def insert_step(
    roadmap: Roadmap,
    anchor_step_id: str,
    where: InsertWhere = "after",
    text: str = DEFAULT_STEP_TEXT,
    step_id: str | None = None,
) -> Roadmap:
    """
    Splice a new step next to `anchor_step_id` inside the anchor's phase.

    The new step starts incomplete. When it lands inside the completed prefix
    (the step right after it is already completed) it is completed instead, so
    the frontier stays contiguous and the current step keeps its identity.
    Callers re-derive the focus from the returned snapshot.
    """

    anchor = find_ref(roadmap, anchor_step_id)
    if anchor is None:
        logger.debug("insert_step: unknown anchor %r", anchor_step_id)
        return roadmap
    if where not in ("before", "after"):
        raise ValueError(f"where must be 'before' or 'after', got {where!r}")

    offset = 0 if where == "before" else 1
    return _splice(roadmap, anchor.phase_index, anchor.step_index + offset, text, step_id)


def append_step(
    roadmap: Roadmap,
    phase_id: str,
    text: str = DEFAULT_STEP_TEXT,
    step_id: str | None = None,
) -> Roadmap:
    """Add a step at the end of a phase; works on empty phases too."""

    for phase_index, phase in enumerate(roadmap.phases):
        if phase.id == phase_id:
            return _splice(roadmap, phase_index, len(phase.steps), text, step_id)

    logger.debug("append_step: unknown phase %r", phase_id)
    return roadmap


def remove_step(roadmap: Roadmap, step_id: str) -> Roadmap:
    """
    Delete a step from its phase.

    Removing the current step refocuses on the first incomplete step of the new
    order. A phase left without steps is kept.
    """

    target = find_ref(roadmap, step_id)
    if target is None:
        logger.debug("remove_step: unknown step %r", step_id)
        return roadmap

    current = first_incomplete(roadmap)
    was_current = current is not None and current.step_id == step_id

    phases = list(roadmap.phases)
    phase = phases[target.phase_index]
    phases[target.phase_index] = replace(phase, steps=tuple(s for s in phase.steps if s.id != step_id))
    updated = Roadmap(phases=tuple(phases))

    if was_current:
        successor = first_incomplete(updated)
        if successor is not None:
            return focus_at(updated, successor.linear_index)
    return updated


def update_step_text(roadmap: Roadmap, step_id: str, text: str) -> Roadmap:
    return map_step(roadmap, step_id, lambda step: replace(step, text=text))


def add_phase(roadmap: Roadmap, name: str, phase_id: str | None = None) -> Roadmap:
    """Append an empty phase."""

    phase = Phase(id=phase_id or new_id(), name=name)
    return Roadmap(phases=roadmap.phases + (phase,))


def rename_phase(roadmap: Roadmap, phase_id: str, name: str) -> Roadmap:
    if not any(phase.id == phase_id for phase in roadmap.phases):
        logger.debug("rename_phase: unknown phase %r", phase_id)
        return roadmap
    return Roadmap(
        phases=tuple(replace(phase, name=name) if phase.id == phase_id else phase for phase in roadmap.phases)
    )


def _splice(roadmap: Roadmap, phase_index: int, position: int, text: str, step_id: str | None) -> Roadmap:
    # The step that will follow the new one in linear order decides its flag.
    following = _step_at_or_after(roadmap, phase_index, position)
    step = Step(
        id=step_id or new_id(),
        text=text,
        completed=following is not None and following.completed,
    )

    phases = list(roadmap.phases)
    phase = phases[phase_index]
    steps = list(phase.steps)
    steps.insert(position, step)
    phases[phase_index] = replace(phase, steps=tuple(steps))
    return Roadmap(phases=tuple(phases))


def _step_at_or_after(roadmap: Roadmap, phase_index: int, position: int) -> Step | None:
    phase = roadmap.phases[phase_index]
    if position < len(phase.steps):
        return phase.steps[position]
    for later in roadmap.phases[phase_index + 1 :]:
        if later.steps:
            return later.steps[0]
    return None


def _rewrite_completion(roadmap: Roadmap, completed: Callable[[LinearRef], bool]) -> Roadmap:
    refs = iter(flatten(roadmap))
    phases = []
    for phase in roadmap.phases:
        steps = []
        for step in phase.steps:
            flag = completed(next(refs))
            steps.append(step if step.completed == flag else replace(step, completed=flag))
        phases.append(replace(phase, steps=tuple(steps)))
    return Roadmap(phases=tuple(phases))


def map_step(roadmap: Roadmap, step_id: str, update: Callable[[Step], Step]) -> Roadmap:
    """Apply `update` to one step by id; unknown ids leave the roadmap unchanged."""
    if find_ref(roadmap, step_id) is None:
        logger.debug("unknown step %r", step_id)
        return roadmap
    return Roadmap(
        phases=tuple(
            replace(phase, steps=tuple(update(s) if s.id == step_id else s for s in phase.steps))
            for phase in roadmap.phases
        )
    )
