from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterable

from .flatten import resolve_step
from .roadmap_models import Annotation, Roadmap, new_id

logger = logging.getLogger(__name__)

Annotations = tuple[Annotation, ...]

REMINDER_WINDOW = timedelta(minutes=1)
"""How late a reminder may still fire after its scheduled time."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_annotation(
    text: str,
    *,
    step_id: str | None = None,
    project_id: str | None = None,
    scheduled_at: datetime | None = None,
    now: datetime | None = None,
) -> Annotation:
    return Annotation(
        id=new_id(),
        text=text,
        created_at=as_utc(now or utcnow()),
        step_id=step_id,
        project_id=project_id,
        scheduled_at=None if scheduled_at is None else as_utc(scheduled_at),
    )


def add_annotation(annotations: Iterable[Annotation], annotation: Annotation) -> Annotations:
    return tuple(annotations) + (annotation,)


def delete_annotation(annotations: Iterable[Annotation], annotation_id: str) -> Annotations:
    return tuple(a for a in annotations if a.id != annotation_id)


def update_text(annotations: Iterable[Annotation], annotation_id: str, text: str) -> Annotations:
    return _update(annotations, annotation_id, lambda a: replace(a, text=text))


def link_to_step(annotations: Iterable[Annotation], annotation_id: str, step_id: str | None) -> Annotations:
    """Point an annotation at a step, or detach it with None. The step is not checked."""
    return _update(annotations, annotation_id, lambda a: replace(a, step_id=step_id))


def link_to_project(annotations: Iterable[Annotation], annotation_id: str, project_id: str | None) -> Annotations:
    return _update(annotations, annotation_id, lambda a: replace(a, project_id=project_id))


def schedule(annotations: Iterable[Annotation], annotation_id: str, when: datetime) -> Annotations:
    """Set the reminder time; rescheduling re-arms a dismissed reminder."""
    when = as_utc(when)
    return _update(annotations, annotation_id, lambda a: replace(a, scheduled_at=when, reminder_dismissed=False))


def unschedule(annotations: Iterable[Annotation], annotation_id: str) -> Annotations:
    return _update(annotations, annotation_id, lambda a: replace(a, scheduled_at=None, reminder_dismissed=False))


def dismiss_reminder(annotations: Iterable[Annotation], annotation_id: str) -> Annotations:
    return _update(annotations, annotation_id, lambda a: replace(a, reminder_dismissed=True))


def for_step(annotations: Iterable[Annotation], step_id: str) -> list[Annotation]:
    return [a for a in annotations if a.step_id == step_id]


def for_project(annotations: Iterable[Annotation], project_id: str) -> list[Annotation]:
    return [a for a in annotations if a.project_id == project_id]


def unlinked(annotations: Iterable[Annotation]) -> list[Annotation]:
    """Annotations not attached to any project."""
    return [a for a in annotations if not a.project_id]


def scheduled(annotations: Iterable[Annotation]) -> list[Annotation]:
    """Scheduled annotations, earliest first."""
    return sorted((a for a in annotations if a.scheduled_at is not None), key=lambda a: as_utc(a.scheduled_at))


def pending_reminders(annotations: Iterable[Annotation], now: datetime | None = None) -> list[Annotation]:
    """Reminders whose time has come and that were not dismissed."""

    now = as_utc(now or utcnow())
    return [a for a in scheduled(annotations) if as_utc(a.scheduled_at) <= now and not a.reminder_dismissed]


def due_reminders(
    annotations: Iterable[Annotation],
    now: datetime | None = None,
    window: timedelta = REMINDER_WINDOW,
) -> list[Annotation]:
    """
    Reminders a poller should fire right now.

    Like `pending_reminders`, but only within `window` after the scheduled
    time, so reminders missed long ago do not all fire at once.
    """

    now = as_utc(now or utcnow())
    return [a for a in pending_reminders(annotations, now) if now - as_utc(a.scheduled_at) < window]


def group_by_date(
    annotations: Iterable[Annotation], tz: tzinfo = timezone.utc
) -> list[tuple[date, list[Annotation]]]:
    """
    Scheduled annotations bucketed by calendar day in `tz`.

    Days come out in order, and each day keeps its annotations earliest first.
    """

    groups: dict[date, list[Annotation]] = {}
    for a in scheduled(annotations):
        day = as_utc(a.scheduled_at).astimezone(tz).date()
        groups.setdefault(day, []).append(a)
    return list(groups.items())


def dangling(annotations: Iterable[Annotation], roadmap: Roadmap) -> list[Annotation]:
    """Annotations whose step id no longer resolves in the roadmap."""
    return [a for a in annotations if a.step_id is not None and resolve_step(roadmap, a.step_id) is None]


def clear_dangling(annotations: Iterable[Annotation], roadmap: Roadmap) -> Annotations:
    """Drop step links that point at removed steps. Never called implicitly."""

    items = tuple(annotations)
    stale = {a.id for a in dangling(items, roadmap)}
    if stale:
        logger.debug("Clearing %d dangling step link(s)", len(stale))
    return tuple(replace(a, step_id=None) if a.id in stale else a for a in items)


def _update(
    annotations: Iterable[Annotation],
    annotation_id: str,
    change: Callable[[Annotation], Annotation],
) -> Annotations:
    items = tuple(annotations)
    if not any(a.id == annotation_id for a in items):
        logger.debug("unknown annotation %r", annotation_id)
        return items
    return tuple(change(a) if a.id == annotation_id else a for a in items)
