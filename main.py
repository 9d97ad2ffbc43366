import argparse
import logging
import os
import sys

from citenet.aggregates import patent_distribution, publication_timeline
from citenet.config import ForceConfig, ViewConfig
from citenet.errors import CitenetError
from citenet.ingestion import load_records
from citenet.models import NodeKind
from citenet.records import PUBLICATION_SCHEMA
from citenet.view import PRESETS, NetworkView, ViewState
from citenet.visualization import (
    export_html,
    institution_palette,
    plot_frame,
    plot_patent_histogram,
    plot_timeline,
)


def setup_logging(debug_mode: bool = False) -> None:
    """Configures the logging format and level."""
    level = logging.DEBUG if debug_mode else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Lay out citation and collaboration networks and export them."
    )
    parser.add_argument(
        "--view",
        choices=sorted(PRESETS),
        default="citation",
        help="Network view to build.",
    )
    parser.add_argument(
        "--source",
        type=str,
        default="data/citations.csv",
        help="Record source (file path or URL) for the chosen view.",
    )
    parser.add_argument(
        "--publications",
        type=str,
        default=None,
        help="Optional publication source for the timeline and patent plots.",
    )
    parser.add_argument(
        "--max-nodes",
        type=int,
        default=None,
        help="Node budget (clamped to 10-1000). Defaults to the view's own budget.",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Maximum simulation ticks (default: run until the layout settles).",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="results",
        help="Directory to save output plots and HTML files.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed.")
    parser.add_argument("--no-zoom", action="store_true", help="Disable zooming.")
    parser.add_argument(
        "--debug", action="store_true", help="Enable verbose debug logging."
    )
    return parser


def main(argv=None) -> int:
    """
    Runs one network view end to end.
    Ingests the source, lays the graph out until it settles, and writes the
    interactive map, a static snapshot and (optionally) publication plots.
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    logger = logging.getLogger("citenet")

    os.makedirs(args.output, exist_ok=True)
    logger.info(f"Results will be saved to: {args.output}")

    config = ViewConfig(
        max_nodes=args.max_nodes,
        enable_zoom=not args.no_zoom,
        force=ForceConfig(seed=args.seed),
    )

    # 1. Load & build
    logger.info(f"[Phase 1] Loading '{args.view}' view from {args.source}...")
    view = NetworkView(args.view, args.source, config)
    if view.load() is ViewState.ERROR:
        logger.error(f"Could not build the view: {view.error}")
        return 1

    # 2. Layout
    logger.info("[Phase 2] Running layout...")
    frame = view.run(args.ticks)
    logger.info(f"  Layout stopped at tick {frame.tick} (alpha={frame.alpha:.4f})")

    # 3. Exports
    logger.info("[Phase 3] Exporting...")
    palette = None
    if NodeKind.AUTHOR in view.displayed.kinds():
        palette = institution_palette(
            n.institutionid for n in view.displayed if n.kind is NodeKind.AUTHOR
        )
    export_html(frame, view.displayed, os.path.join(args.output, f"{args.view}_map.html"), palette)
    plot_frame(frame, view.displayed, os.path.join(args.output, f"{args.view}_layout.png"), palette)

    if args.publications:
        try:
            publications = load_records(args.publications, PUBLICATION_SCHEMA).records
        except CitenetError as e:
            logger.error(f"Skipping publication plots: {e}")
        else:
            plot_timeline(
                publication_timeline(publications),
                os.path.join(args.output, "publication_timeline.png"),
            )
            plot_patent_histogram(
                patent_distribution(publications),
                os.path.join(args.output, "patent_histogram.png"),
            )

    for name, value in view.summary().items():
        logger.info(f"  {name}: {value}")
    view.teardown()

    logger.info(f"Done! All results saved to: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
