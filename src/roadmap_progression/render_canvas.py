from __future__ import annotations

import textwrap
from importlib import metadata
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # ensure headless, deterministic output
import matplotlib.path as mpath
import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, PathPatch

from .canvas import connections, content_bounds, layout, render_position
from .config import DEFAULT_SETTINGS, CanvasSettings
from .flatten import first_incomplete, flatten, progress_percent
from .roadmap_models import Connection, Positioned, Roadmap

# Drawing tuning knobs.
UNITS_PER_INCH = 100.0
MIN_FIG_INCH = 4.0
MAX_FIG_INCH = 30.0
VIEW_MARGIN = 80.0  # logical units of breathing room around the content
CORNER_RADIUS = 16.0
WRAP_CHARS = 28
TITLE_FONT = 14
LABEL_FONT = 10
PHASE_FONT = 8
FOOTER_FONT = 8

STEP_COLORS = {
    "completed": ("#cffafe", "#22d3ee"),
    "active": ("#dbeafe", "#3b82f6"),
    "future": ("#f3f4f6", "#9ca3af"),
}
CONNECTION_STYLES = {
    "completed": {"color": "#22d3ee", "linewidth": 2.0, "linestyle": "-"},
    "active": {"color": "#3b82f6", "linewidth": 2.6, "linestyle": "-"},
    "future": {"color": "#93c5fd", "linewidth": 2.0, "linestyle": (0, (6, 10))},
}


def render_canvas(
    roadmap: Roadmap,
    out_path: str,
    title: str = "",
    settings: CanvasSettings = DEFAULT_SETTINGS,
) -> None:
    """
    Render a static SVG snapshot of the roadmap canvas to `out_path`.

    - Steps are drawn at their render coordinates (defaults for unplaced steps).
    - Consecutive steps are joined by curves styled by the source step's state.
    - The current step is highlighted; only the content area is drawn, not the
      whole virtual canvas.
    """

    bounds = content_bounds(roadmap, settings)
    if bounds is None:
        raise ValueError("roadmap must contain at least one step")

    left, top = render_position(Positioned(bounds.min_x, bounds.min_y), settings)
    right, bottom = render_position(Positioned(bounds.max_x, bounds.max_y), settings)
    left -= VIEW_MARGIN
    top -= VIEW_MARGIN
    right += VIEW_MARGIN
    bottom += VIEW_MARGIN

    fig_width = min(MAX_FIG_INCH, max(MIN_FIG_INCH, (right - left) / UNITS_PER_INCH))
    fig_height = min(MAX_FIG_INCH, max(MIN_FIG_INCH, (bottom - top) / UNITS_PER_INCH))
    fig = plt.figure(figsize=(fig_width, fig_height))
    ax = fig.add_axes([0.02, 0.04, 0.96, 0.88])

    # Screen-like axes: y grows downward.
    ax.set_xlim(left, right)
    ax.set_ylim(bottom, top)
    ax.set_aspect("equal", adjustable="datalim")
    ax.axis("off")

    fig.suptitle(title, x=0.5, fontsize=TITLE_FONT, y=0.985)
    footer = f"{progress_percent(roadmap)}% complete · roadmap-progression v{_tool_version()}"
    fig.text(0.99, 0.01, footer, ha="right", va="bottom", fontsize=FOOTER_FONT, alpha=0.8)

    for connection in connections(roadmap, settings):
        _draw_connection(ax, connection)

    positions = layout(roadmap, settings)
    current = first_incomplete(roadmap)

    for ref in flatten(roadmap):
        x, y = render_position(positions[ref.step_id], settings)
        if ref.completed:
            state = "completed"
        elif current is not None and ref.step_id == current.step_id:
            state = "active"
        else:
            state = "future"
        face, edge = STEP_COLORS[state]

        ax.add_patch(
            FancyBboxPatch(
                (x, y),
                settings.item_width,
                settings.item_height,
                boxstyle=f"round,pad=0,rounding_size={CORNER_RADIUS}",
                facecolor=face,
                edgecolor=edge,
                linewidth=2.4 if state == "active" else 1.2,
                zorder=3,
            )
        )
        ax.text(
            x + settings.item_width / 2,
            y + settings.item_height / 2,
            textwrap.fill(ref.step.display_text, WRAP_CHARS),
            ha="center",
            va="center",
            fontsize=LABEL_FONT,
            fontweight="bold" if state == "active" else "normal",
            zorder=4,
        )
        ax.text(
            x + CORNER_RADIUS,
            y + CORNER_RADIUS,
            ref.phase_name,
            ha="left",
            va="top",
            fontsize=PHASE_FONT,
            alpha=0.6,
            zorder=4,
        )

    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, format="svg", bbox_inches="tight")
    plt.close(fig)


def _draw_connection(ax: plt.Axes, connection: Connection) -> None:
    path = mpath.Path(
        [connection.start, connection.control1, connection.control2, connection.end],
        [mpath.Path.MOVETO, mpath.Path.CURVE4, mpath.Path.CURVE4, mpath.Path.CURVE4],
    )
    style = CONNECTION_STYLES[connection.kind]
    ax.add_patch(
        PathPatch(
            path,
            fill=False,
            capstyle="round",
            zorder=2,
            **style,
        )
    )


def _tool_version() -> str:
    try:
        return metadata.version("roadmap-progression")
    except metadata.PackageNotFoundError:
        return "0.0.0"
