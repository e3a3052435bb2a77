from __future__ import annotations

from typing import Iterable, List

from .roadmap_models import LinearRef, Phase, ProgressState, Roadmap, Step


def flatten(roadmap: Roadmap) -> list[LinearRef]:
    """
    Project a roadmap onto its linear order.

    Phases are walked in order, then steps within each phase; `linear_index`
    is the position in that concatenation. Empty phases contribute nothing.
    Always recomputed from the snapshot passed in.
    """

    refs: List[LinearRef] = []
    linear_index = 0

    for phase_index, phase in enumerate(roadmap.phases):
        for step_index, step in enumerate(phase.steps):
            refs.append(
                LinearRef(
                    phase_index=phase_index,
                    step_index=step_index,
                    linear_index=linear_index,
                    phase_id=phase.id,
                    step_id=step.id,
                    phase_name=phase.name,
                    step=step,
                )
            )
            linear_index += 1

    return refs


def unflatten(refs: Iterable[LinearRef]) -> Roadmap:
    """Regroup linear refs into phases, keeping first-seen phase order."""

    phases: dict[str, tuple[str, list[Step]]] = {}
    for ref in sorted(refs, key=lambda r: r.linear_index):
        name, steps = phases.setdefault(ref.phase_id, (ref.phase_name, []))
        steps.append(ref.step)

    return Roadmap(
        phases=tuple(Phase(id=phase_id, name=name, steps=tuple(steps)) for phase_id, (name, steps) in phases.items())
    )


def first_incomplete(roadmap: Roadmap) -> LinearRef | None:
    """
    First step in linear order that is not completed, or None.

    Whatever follows that step is ignored, so out-of-order flags from bad data
    do not hide the current step.
    """

    for ref in flatten(roadmap):
        if not ref.completed:
            return ref
    return None


def all_done(roadmap: Roadmap) -> bool:
    refs = flatten(roadmap)
    return bool(refs) and all(ref.completed for ref in refs)


def focus_index(roadmap: Roadmap) -> int:
    """The focus pointer F: index of the first incomplete step, or the step count when all are done."""

    current = first_incomplete(roadmap)
    if current is None:
        return len(flatten(roadmap))
    return current.linear_index


def progress_state(roadmap: Roadmap) -> ProgressState:
    current = first_incomplete(roadmap)
    if current is not None:
        return ProgressState(kind="has_focus", step_id=current.step_id)
    if roadmap.is_empty:
        return ProgressState(kind="empty")
    return ProgressState(kind="all_done")


def find_ref(roadmap: Roadmap, step_id: str) -> LinearRef | None:
    for ref in flatten(roadmap):
        if ref.step_id == step_id:
            return ref
    return None


def resolve_step(roadmap: Roadmap, step_id: str | None) -> Step | None:
    """Look a step up by id; None when the id is unset or no longer present."""

    if step_id is None:
        return None
    ref = find_ref(roadmap, step_id)
    return ref.step if ref is not None else None


def upcoming(roadmap: Roadmap, limit: int = 2) -> list[LinearRef]:
    """Incomplete steps queued after the current one, at most `limit` of them."""

    current = first_incomplete(roadmap)
    if current is None or limit <= 0:
        return []
    later = [ref for ref in flatten(roadmap)[current.linear_index + 1 :] if not ref.completed]
    return later[:limit]


def progress_percent(roadmap: Roadmap) -> int:
    refs = flatten(roadmap)
    if not refs:
        return 0
    done = sum(1 for ref in refs if ref.completed)
    return round(done / len(refs) * 100)


def phase_progress(roadmap: Roadmap, phase_id: str) -> tuple[int, int]:
    """(done, total) step counts for one phase; (0, 0) for an unknown phase."""

    for phase in roadmap.phases:
        if phase.id == phase_id:
            return sum(1 for step in phase.steps if step.completed), len(phase.steps)
    return 0, 0


def phase_completed(roadmap: Roadmap, phase_id: str) -> bool:
    done, total = phase_progress(roadmap, phase_id)
    return total > 0 and done == total
