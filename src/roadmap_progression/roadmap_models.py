from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Literal


ProgressKind = Literal["has_focus", "all_done", "empty"]
"""Roadmap-level progression states: a current step exists, every step is done, or there are no steps."""


def new_id() -> str:
    """Return a fresh opaque identifier for steps, phases and annotations."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Unpositioned:
    """Marker for a step that has never been placed on the canvas."""


@dataclass(frozen=True)
class Positioned:
    """Logical canvas coordinates of a placed step."""

    x: float
    y: float


Position = Unpositioned | Positioned
"""Either no stored coordinates or an explicit logical (x, y) pair."""

UNPOSITIONED = Unpositioned()


@dataclass(frozen=True)
class Step:
    """Atomic unit of work. `completed` is owned by the progression functions."""

    id: str
    text: str = ""
    completed: bool = False
    position: Position = UNPOSITIONED

    @property
    def display_text(self) -> str:
        """Text shown to users; blank steps render as a placeholder."""
        return self.text.strip() or "Untitled step"


@dataclass(frozen=True)
class Phase:
    """Ordered container of steps."""

    id: str
    name: str
    steps: tuple[Step, ...] = ()


@dataclass(frozen=True)
class Roadmap:
    """Ordered phases; concatenating their steps gives the linear order."""

    phases: tuple[Phase, ...] = ()

    @property
    def steps(self) -> tuple[Step, ...]:
        """All steps in linear order."""
        return tuple(step for phase in self.phases for step in phase.steps)

    @property
    def is_empty(self) -> bool:
        return not any(phase.steps for phase in self.phases)


@dataclass(frozen=True)
class LinearRef:
    """
    Position of one step inside a roadmap snapshot.

    Only valid for the snapshot it was computed from: any insert or remove
    shifts every later index.
    """

    phase_index: int
    step_index: int
    linear_index: int
    phase_id: str
    step_id: str
    phase_name: str
    step: Step

    @property
    def completed(self) -> bool:
        return self.step.completed


@dataclass(frozen=True)
class ProgressState:
    """Where the roadmap stands: focused on a step, all done, or empty."""

    kind: ProgressKind
    step_id: str | None = None


@dataclass(frozen=True)
class Annotation:
    """
    Free-form note ("thought") that can point at a step or be scheduled.

    `step_id` and `project_id` are lookup keys only. A deleted step leaves the
    id in place until the owner clears it.
    """

    id: str
    text: str
    created_at: datetime
    step_id: str | None = None
    project_id: str | None = None
    scheduled_at: datetime | None = None
    reminder_dismissed: bool = False

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_at is not None


DEFAULT_TEMPLATE: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Planning", ("Define the problem", "Clarify the core idea")),
    ("Design", ("Sketch main user flow", "Decide MVP scope")),
    ("Development", ("Implement core logic", "Test interactions")),
)


def default_roadmap() -> Roadmap:
    """Starter roadmap for new projects: three phases with two steps each."""

    return Roadmap(
        phases=tuple(
            Phase(
                id=new_id(),
                name=name,
                steps=tuple(Step(id=new_id(), text=text) for text in texts),
            )
            for name, texts in DEFAULT_TEMPLATE
        )
    )


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned box in logical canvas coordinates."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def center(self) -> tuple[float, float]:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)


@dataclass(frozen=True)
class Connection:
    """
    Curve joining two consecutive steps in linear order, in render coordinates.

    `kind` follows the source step: completed, active (the current step) or future.
    """

    from_id: str
    to_id: str
    start: tuple[float, float]
    control1: tuple[float, float]
    control2: tuple[float, float]
    end: tuple[float, float]
    kind: Literal["completed", "active", "future"] = "future"
