import math

from roadmap_progression.canvas import (
    CanvasView,
    Viewport,
    assign_default_positions,
    auto_center,
    center_pan,
    connections,
    content_bounds,
    drag_step,
    layout,
    move_step,
    pan_by,
    position_limits,
    render_position,
    reset_view,
    set_zoom,
    to_screen,
    virtual_size,
)
from roadmap_progression.config import CanvasSettings
from roadmap_progression.progression import complete_current, remove_step
from roadmap_progression.roadmap_models import UNPOSITIONED, Phase, Positioned, Roadmap, Step

SETTINGS = CanvasSettings()


def _roadmap_with_steps(*steps):
    return Roadmap(phases=(Phase(id="p", name="P", steps=tuple(steps)),))


def _position(roadmap, step_id):
    for step in roadmap.steps:
        if step.id == step_id:
            return step.position
    raise KeyError(step_id)


def test_unplaced_steps_stack_below_previous():
    roadmap = _roadmap_with_steps(
        Step(id="a"),
        Step(id="b"),
        Step(id="c", position=Positioned(500, -40)),
        Step(id="d"),
    )

    positions = layout(roadmap, SETTINGS)

    step_y = SETTINGS.item_height + SETTINGS.stack_gap
    assert positions["a"] == Positioned(0.0, 0.0)
    assert positions["b"] == Positioned(0.0, step_y)
    assert positions["c"] == Positioned(500, -40)
    assert positions["d"] == Positioned(500, -40 + step_y)


def test_assign_default_positions_is_deterministic():
    roadmap = _roadmap_with_steps(Step(id="a"), Step(id="b", position=Positioned(7, 8)))

    first = assign_default_positions(roadmap, SETTINGS)

    assert first == assign_default_positions(roadmap, SETTINGS)
    assert _position(first, "a") == Positioned(0.0, 0.0)
    assert _position(first, "b") == Positioned(7, 8)


def test_empty_roadmap_uses_minimum_canvas():
    assert content_bounds(Roadmap(), SETTINGS) is None
    assert virtual_size(Roadmap(), SETTINGS) == (SETTINGS.min_width, SETTINGS.min_height)


def test_virtual_size_grows_with_content():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(5000, 100)))

    width, height = virtual_size(roadmap, SETTINGS)

    assert width == SETTINGS.padding + 5000 + SETTINGS.item_width + SETTINGS.padding
    assert height == SETTINGS.padding + 100 + SETTINGS.item_height + SETTINGS.padding

    small = CanvasSettings(padding=200, edge_margin=20)
    assert virtual_size(_roadmap_with_steps(Step(id="a")), small) == (small.min_width, small.min_height)


def test_render_position_offsets_by_padding():
    assert render_position(Positioned(-100, 20), SETTINGS) == (SETTINGS.padding - 100, SETTINGS.padding + 20)


def test_drag_larger_than_canvas_is_clamped():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(0, 0)))
    width, height = virtual_size(roadmap, SETTINGS)

    moved = drag_step(roadmap, "a", width * 10, height * 10, SETTINGS)

    max_x = width - SETTINGS.padding - SETTINGS.item_width
    max_y = height - SETTINGS.padding - SETTINGS.item_height
    assert _position(moved, "a") == Positioned(max_x - SETTINGS.edge_margin, max_y - SETTINGS.edge_margin)


def test_drag_stays_inside_bounds_for_any_delta():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(100, 100)), Step(id="b"))
    (lo_x, hi_x), (lo_y, hi_y) = position_limits(roadmap, SETTINGS)

    for dx, dy in [(-1e9, 0), (0, -1e9), (1e9, 1e9), (-123.5, 456.25), (0, 0)]:
        pos = _position(drag_step(roadmap, "a", dx, dy, SETTINGS), "a")
        assert lo_x <= pos.x <= hi_x
        assert lo_y <= pos.y <= hi_y

    pos = _position(drag_step(roadmap, "a", -1e9, -1e9, SETTINGS), "a")
    assert pos == Positioned(-SETTINGS.padding + SETTINGS.edge_margin, -SETTINGS.padding + SETTINGS.edge_margin)


def test_drag_places_unpositioned_step_from_default():
    roadmap = _roadmap_with_steps(Step(id="a"), Step(id="b"))

    moved = drag_step(roadmap, "b", 30, -10, SETTINGS)

    assert _position(moved, "a") is UNPOSITIONED
    assert _position(moved, "b") == Positioned(30.0, SETTINGS.item_height + SETTINGS.stack_gap - 10)


def test_move_step_ignores_unknown_and_non_finite():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(1, 2)))

    assert move_step(roadmap, "missing", 10, 10, SETTINGS) == roadmap
    assert move_step(roadmap, "a", math.nan, 10, SETTINGS) == roadmap
    assert move_step(roadmap, "a", 10, math.inf, SETTINGS) == roadmap
    assert _position(move_step(roadmap, "a", 10, 20, SETTINGS), "a") == Positioned(10, 20)


def test_positions_survive_completion_and_other_moves():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(1, 2)), Step(id="b", position=Positioned(3, 4)))

    roadmap = complete_current(roadmap)
    roadmap = move_step(roadmap, "a", 50, 60, SETTINGS)

    assert _position(roadmap, "b") == Positioned(3, 4)
    assert roadmap.steps[0].completed


def test_set_zoom_clamps_to_range():
    view = CanvasView()

    assert set_zoom(view, 10, SETTINGS).zoom == SETTINGS.max_zoom
    assert set_zoom(view, 0.01, SETTINGS).zoom == SETTINGS.min_zoom
    assert set_zoom(view, 1.5, SETTINGS).zoom == 1.5
    assert set_zoom(view, math.nan, SETTINGS) == view


def test_center_pan_maps_content_center_to_viewport_center():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(-800, 2400)), Step(id="b"))
    viewport = Viewport(1200, 800)

    for zoom in (0.3, 1.0, 1.7):
        pan = center_pan(roadmap, viewport, zoom, SETTINGS)
        view = CanvasView(zoom=zoom, pan_x=pan[0], pan_y=pan[1])
        bounds = content_bounds(roadmap, SETTINGS)
        center = render_position(Positioned(*bounds.center), SETTINGS)
        sx, sy = to_screen(center, view)
        assert math.isclose(sx, 600)
        assert math.isclose(sy, 400)


def test_centering_degenerate_cases_are_safe():
    roadmap = _roadmap_with_steps(Step(id="a"))

    assert center_pan(roadmap, Viewport(0, 0), 1.0, SETTINGS) is None
    assert center_pan(roadmap, Viewport(800, 0), 1.0, SETTINGS) is None
    assert center_pan(Roadmap(), Viewport(800, 600), 1.0, SETTINGS) is None
    assert center_pan(roadmap, Viewport(800, 600), 0.0, SETTINGS) is None

    view = CanvasView()
    assert auto_center(view, roadmap, Viewport(), SETTINGS) == view
    assert auto_center(view, Roadmap(), Viewport(800, 600), SETTINGS) == view


def test_auto_center_applies_once_per_session():
    roadmap = _roadmap_with_steps(Step(id="a"))
    viewport = Viewport(1000, 700)

    view = auto_center(CanvasView(), roadmap, viewport, SETTINGS)
    assert view.auto_centered
    assert all(math.isfinite(v) for v in (view.pan_x, view.pan_y))

    panned = pan_by(view, 40, -15)
    moved = move_step(roadmap, "a", 900, 900, SETTINGS)
    assert auto_center(panned, moved, viewport, SETTINGS) == panned


def test_reset_view_recenters_and_restores_zoom():
    roadmap = _roadmap_with_steps(Step(id="a"))
    viewport = Viewport(1000, 700)
    view = pan_by(set_zoom(auto_center(CanvasView(), roadmap, viewport, SETTINGS), 1.8, SETTINGS), 300, 300)

    reset = reset_view(view, roadmap, viewport, SETTINGS)

    assert reset.zoom == SETTINGS.default_zoom
    assert (reset.pan_x, reset.pan_y) == center_pan(roadmap, viewport, SETTINGS.default_zoom, SETTINGS)


def test_reset_view_without_viewport_rearms_auto_center():
    roadmap = _roadmap_with_steps(Step(id="a"))
    view = CanvasView(zoom=1.5, pan_x=12, pan_y=34, auto_centered=True)

    reset = reset_view(view, roadmap, Viewport(), SETTINGS)

    assert reset == CanvasView(zoom=SETTINGS.default_zoom, pan_x=12, pan_y=34, auto_centered=False)
    assert auto_center(reset, roadmap, Viewport(640, 480), SETTINGS).auto_centered


def test_connections_follow_linear_order_and_state():
    roadmap = Roadmap(
        phases=(
            Phase(id="p1", name="P1", steps=(Step(id="a", completed=True), Step(id="b"))),
            Phase(id="p2", name="P2", steps=(Step(id="c"),)),
        )
    )

    curves = connections(roadmap, SETTINGS)

    assert [(c.from_id, c.to_id, c.kind) for c in curves] == [("a", "b", "completed"), ("b", "c", "active")]
    a_x, a_y = render_position(layout(roadmap, SETTINGS)["a"], SETTINGS)
    assert curves[0].start == (a_x + SETTINGS.item_width / 2, a_y + SETTINGS.item_height)

    trimmed = remove_step(roadmap, "b")
    assert [(c.from_id, c.to_id) for c in connections(trimmed, SETTINGS)] == [("a", "c")]
    assert connections(Roadmap(), SETTINGS) == []


def test_steps_stored_off_canvas_render_inside_it():
    roadmap = _roadmap_with_steps(Step(id="a", position=Positioned(-5000, 300)), Step(id="b"))
    low = -SETTINGS.padding + SETTINGS.edge_margin

    positions = layout(roadmap, SETTINGS)

    assert positions["a"] == Positioned(low, 300)
    assert positions["b"] == Positioned(low, 300 + SETTINGS.item_height + SETTINGS.stack_gap)
    assert all(min(render_position(p, SETTINGS)) >= 0 for p in positions.values())
    assert content_bounds(roadmap, SETTINGS).min_x == low
