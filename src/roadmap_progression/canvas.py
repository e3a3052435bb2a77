from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

from .config import DEFAULT_SETTINGS, CanvasSettings
from .flatten import find_ref, first_incomplete, flatten
from .progression import map_step
from .roadmap_models import Bounds, Connection, Positioned, Roadmap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Viewport:
    """Measured size of the visible container, in screen pixels. Zero until measured."""

    width: float = 0.0
    height: float = 0.0

    @property
    def measured(self) -> bool:
        return (
            math.isfinite(self.width)
            and math.isfinite(self.height)
            and self.width > 0
            and self.height > 0
        )


@dataclass(frozen=True)
class CanvasView:
    """
    Visual transform of the canvas: screen = zoom * (render + pan).

    `auto_centered` records that the one automatic centering of the session
    has happened, so later user panning is not overridden.
    """

    zoom: float = DEFAULT_SETTINGS.default_zoom
    pan_x: float = 0.0
    pan_y: float = 0.0
    auto_centered: bool = False


def layout(roadmap: Roadmap, settings: CanvasSettings = DEFAULT_SETTINGS) -> dict[str, Positioned]:
    """
    Resolve a logical position for every step, keyed by step id.

    Placed steps keep their coordinates, except that anything stored beyond the
    left or top edge margin is pulled back onto the canvas. An unplaced step is
    stacked below the previous step in linear order; the very first defaults to
    the origin.
    """

    low = -settings.padding + settings.edge_margin
    positions: dict[str, Positioned] = {}
    previous: Positioned | None = None

    for step in roadmap.steps:
        if isinstance(step.position, Positioned):
            pos = step.position
            if pos.x < low or pos.y < low:
                logger.debug("layout: step %r stored off canvas at (%s, %s)", step.id, pos.x, pos.y)
                pos = Positioned(max(low, pos.x), max(low, pos.y))
        elif previous is None:
            pos = Positioned(0.0, 0.0)
        else:
            pos = Positioned(previous.x, previous.y + settings.item_height + settings.stack_gap)
        positions[step.id] = pos
        previous = pos

    return positions


def assign_default_positions(roadmap: Roadmap, settings: CanvasSettings = DEFAULT_SETTINGS) -> Roadmap:
    """Store the resolved default position on every unplaced step."""

    positions = layout(roadmap, settings)
    return Roadmap(
        phases=tuple(
            replace(
                phase,
                steps=tuple(
                    step if isinstance(step.position, Positioned) else replace(step, position=positions[step.id])
                    for step in phase.steps
                ),
            )
            for phase in roadmap.phases
        )
    )


def content_bounds(roadmap: Roadmap, settings: CanvasSettings = DEFAULT_SETTINGS) -> Bounds | None:
    """Logical box covering every step including its footprint; None without steps."""

    positions = list(layout(roadmap, settings).values())
    if not positions:
        return None
    return Bounds(
        min_x=min(p.x for p in positions),
        min_y=min(p.y for p in positions),
        max_x=max(p.x for p in positions) + settings.item_width,
        max_y=max(p.y for p in positions) + settings.item_height,
    )


def virtual_size(roadmap: Roadmap, settings: CanvasSettings = DEFAULT_SETTINGS) -> tuple[float, float]:
    """
    Size of the virtual canvas in render units.

    The canvas spans the padding offset, the content up to its far edge, and
    another padding beyond it, but never less than the configured minimum.
    """

    bounds = content_bounds(roadmap, settings)
    if bounds is None:
        return settings.min_width, settings.min_height
    width = max(settings.min_width, settings.padding + max(0.0, bounds.max_x) + settings.padding)
    height = max(settings.min_height, settings.padding + max(0.0, bounds.max_y) + settings.padding)
    return width, height


def render_position(position: Positioned, settings: CanvasSettings = DEFAULT_SETTINGS) -> tuple[float, float]:
    """Logical to render coordinates: shift by the left/top padding."""
    return position.x + settings.padding, position.y + settings.padding


def position_limits(
    roadmap: Roadmap, settings: CanvasSettings = DEFAULT_SETTINGS
) -> tuple[tuple[float, float], tuple[float, float]]:
    """Allowed logical ((min_x, max_x), (min_y, max_y)) for a step's top-left corner."""

    width, height = virtual_size(roadmap, settings)
    low = -settings.padding + settings.edge_margin
    high_x = width - settings.padding - settings.item_width - settings.edge_margin
    high_y = height - settings.padding - settings.item_height - settings.edge_margin
    return (low, max(low, high_x)), (low, max(low, high_y))


def move_step(
    roadmap: Roadmap,
    step_id: str,
    new_x: float,
    new_y: float,
    settings: CanvasSettings = DEFAULT_SETTINGS,
) -> Roadmap:
    """
    Place a step at logical (new_x, new_y), clamped inside the virtual canvas.

    Only the moved step changes. Unknown ids and non-finite coordinates leave
    the roadmap as it is.
    """

    if find_ref(roadmap, step_id) is None:
        logger.debug("move_step: unknown step %r", step_id)
        return roadmap
    if not (math.isfinite(new_x) and math.isfinite(new_y)):
        logger.debug("move_step: ignoring non-finite target (%r, %r)", new_x, new_y)
        return roadmap

    (lo_x, hi_x), (lo_y, hi_y) = position_limits(roadmap, settings)
    x = _clamp(new_x, lo_x, hi_x)
    y = _clamp(new_y, lo_y, hi_y)
    if (x, y) != (new_x, new_y):
        logger.debug("move_step: clamped (%s, %s) to (%s, %s)", new_x, new_y, x, y)

    return map_step(roadmap, step_id, lambda step: replace(step, position=Positioned(x, y)))


def drag_step(
    roadmap: Roadmap,
    step_id: str,
    dx: float,
    dy: float,
    settings: CanvasSettings = DEFAULT_SETTINGS,
) -> Roadmap:
    """Commit a finished drag: old position (default if unplaced) plus the pointer delta."""

    current = layout(roadmap, settings).get(step_id)
    if current is None:
        logger.debug("drag_step: unknown step %r", step_id)
        return roadmap
    return move_step(roadmap, step_id, current.x + dx, current.y + dy, settings)


def set_zoom(view: CanvasView, zoom: float, settings: CanvasSettings = DEFAULT_SETTINGS) -> CanvasView:
    """Clamp the zoom into the allowed range; positions are untouched."""

    if not math.isfinite(zoom):
        logger.debug("set_zoom: ignoring non-finite zoom %r", zoom)
        return view
    return replace(view, zoom=_clamp(zoom, settings.min_zoom, settings.max_zoom))


def pan_by(view: CanvasView, dx: float, dy: float) -> CanvasView:
    if not (math.isfinite(dx) and math.isfinite(dy)):
        return view
    return replace(view, pan_x=view.pan_x + dx, pan_y=view.pan_y + dy)


def center_pan(
    roadmap: Roadmap,
    viewport: Viewport,
    zoom: float,
    settings: CanvasSettings = DEFAULT_SETTINGS,
) -> tuple[float, float] | None:
    """
    Pan that puts the content center on the viewport center.

    Returns None while the viewport is unmeasured, the roadmap has no steps,
    or the zoom is unusable.
    """

    if not viewport.measured:
        return None
    if not math.isfinite(zoom) or zoom <= 0:
        return None
    bounds = content_bounds(roadmap, settings)
    if bounds is None:
        return None

    content_x, content_y = render_position(Positioned(*bounds.center), settings)
    pan_x = viewport.width / 2 / zoom - content_x
    pan_y = viewport.height / 2 / zoom - content_y
    if not (math.isfinite(pan_x) and math.isfinite(pan_y)):
        return None
    return pan_x, pan_y


def auto_center(
    view: CanvasView,
    roadmap: Roadmap,
    viewport: Viewport,
    settings: CanvasSettings = DEFAULT_SETTINGS,
) -> CanvasView:
    """
    Center the content once per session.

    Does nothing after the first successful centering. While centering is not
    yet possible the view is returned unchanged so the caller can retry on the
    next measurement.
    """

    if view.auto_centered:
        return view
    pan = center_pan(roadmap, viewport, view.zoom, settings)
    if pan is None:
        return view
    logger.debug("auto_center: pan set to %s", pan)
    return replace(view, pan_x=pan[0], pan_y=pan[1], auto_centered=True)


def reset_view(
    view: CanvasView,
    roadmap: Roadmap,
    viewport: Viewport,
    settings: CanvasSettings = DEFAULT_SETTINGS,
) -> CanvasView:
    """Explicit "reset view": default zoom and content re-centered."""

    zoom = settings.default_zoom
    pan = center_pan(roadmap, viewport, zoom, settings)
    if pan is None:
        # Re-arm automatic centering for when a size becomes available.
        return replace(view, zoom=zoom, auto_centered=False)
    return CanvasView(zoom=zoom, pan_x=pan[0], pan_y=pan[1], auto_centered=True)


def to_screen(point: tuple[float, float], view: CanvasView) -> tuple[float, float]:
    x, y = point
    return view.zoom * (x + view.pan_x), view.zoom * (y + view.pan_y)


def connections(roadmap: Roadmap, settings: CanvasSettings = DEFAULT_SETTINGS) -> list[Connection]:
    """
    Curves between consecutive steps in linear order, in render coordinates.

    Each curve leaves the bottom center of one step and enters the top center
    of the next. Nothing is stored; call again after any change.
    """

    refs = flatten(roadmap)
    positions = layout(roadmap, settings)
    current = first_incomplete(roadmap)
    half_w = settings.item_width / 2

    result: list[Connection] = []
    for source, target in zip(refs, refs[1:]):
        sx, sy = render_position(positions[source.step_id], settings)
        tx, ty = render_position(positions[target.step_id], settings)
        start = (sx + half_w, sy + settings.item_height)
        end = (tx + half_w, ty)
        bend = max(abs(end[1] - start[1]) / 2, settings.stack_gap)

        if source.completed:
            kind = "completed"
        elif current is not None and source.step_id == current.step_id:
            kind = "active"
        else:
            kind = "future"

        result.append(
            Connection(
                from_id=source.step_id,
                to_id=target.step_id,
                start=start,
                control1=(start[0], start[1] + bend),
                control2=(end[0], end[1] - bend),
                end=end,
                kind=kind,
            )
        )
    return result


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)
