from __future__ import annotations

import argparse
import logging
import sys
import webbrowser
from pathlib import Path

from .config import ConfigError, load_settings
from .flatten import first_incomplete, progress_percent, progress_state, upcoming
from .parse_roadmap import load_roadmap
from .render_canvas import render_canvas


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roadmap_progression",
        description="Preview a roadmap: current focus, next steps and a canvas snapshot",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("roadmap", help="Path to a stored roadmap (JSON or YAML)")
    parser.add_argument("--out", default="output/roadmap_canvas.svg", help="Output SVG path")
    parser.add_argument("--settings", help="Canvas settings YAML; defaults are used when omitted")
    parser.add_argument("--title", default="", help="Title drawn above the canvas")
    parser.add_argument("--next", dest="next_count", type=int, default=2, help="How many upcoming steps to list")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--view",
        dest="view",
        action="store_true",
        default=False,
        help="Best-effort open the output file after rendering",
    )
    parser.add_argument(
        "--no-view",
        dest="view",
        action="store_false",
        help="Do not open the output file after rendering",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.settings)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    roadmap = load_roadmap(Path(args.roadmap))
    state = progress_state(roadmap)

    if state.kind == "empty":
        print("No steps yet.")
        return 0

    current = first_incomplete(roadmap)
    if current is None:
        print("All steps done.")
    else:
        print(f"Now:  {current.step.display_text}  ({current.phase_name})")
        for ref in upcoming(roadmap, args.next_count):
            print(f"Next: {ref.step.display_text}  ({ref.phase_name})")
    print(f"Progress: {progress_percent(roadmap)}%")

    try:
        render_canvas(roadmap, out_path=args.out, title=args.title, settings=settings)
    except Exception as exc:
        print(f"Unexpected error while rendering: {exc}", file=sys.stderr)
        return 1

    if args.view:
        try:
            webbrowser.open(Path(args.out).resolve().as_uri())
        except Exception:
            pass

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
