"""Command-line wrapper around the fingerprint computation."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from stepcache.config import load_settings
from stepcache.core.cache import CacheIndex
from stepcache.core.diagnostics import DiagnosticsWriter, LoggingDiagnostics
from stepcache.core.fingerprint import fingerprint
from stepcache.core.graph import UnknownStepError, load_graph
from stepcache.core.validation import ConfigurationError

logger = logging.getLogger(__name__)

EXIT_STALE = 2
DEFAULT_DIAGNOSTICS_DIR = Path("diagnostics")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute the fingerprint of a pipeline step")
    parser.add_argument("name", help="Step to fingerprint")
    parser.add_argument(
        "--graph",
        type=Path,
        required=True,
        help="Path to pipeline graph YAML",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Path to settings YAML (defaults and environment are used if unset)",
    )
    parser.add_argument(
        "--profile",
        default="default",
        help="Settings profile to load",
    )
    parser.add_argument(
        "--details",
        action="store_true",
        help="Print the hash of every component",
    )
    parser.add_argument(
        "--details-csv",
        type=Path,
        help="Write the component breakdown to a CSV file",
    )
    parser.add_argument(
        "--check-cache",
        action="store_true",
        help=f"Exit with status {EXIT_STALE} if the cache index holds a different fingerprint",
    )
    parser.add_argument(
        "--record",
        action="store_true",
        help="Store the fingerprint in the cache index",
    )
    parser.add_argument(
        "--diagnostics-dir",
        type=Path,
        help=(
            "Where to write error reports (default: ./diagnostics). "
            "With --details the YAML breakdown is written here too"
        ),
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Set logging verbosity",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING))


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    diagnostics = DiagnosticsWriter(args.diagnostics_dir or DEFAULT_DIAGNOSTICS_DIR)
    want_details = args.details or args.details_csv is not None

    try:
        settings = load_settings(args.settings, profile=args.profile)
        graph = load_graph(args.graph, algorithm=settings.hash_algorithm)
        result = fingerprint(
            args.name,
            details=want_details,
            graph=graph,
            settings=settings,
            diagnostics=LoggingDiagnostics(settings.verbosity),
        )
    except ConfigurationError as e:
        diagnostics.write_error("ConfigurationError", str(e), {"graph_file": args.graph})
        diagnostics.write_stack_trace()
        logger.error("Configuration error: %s", e)
        logger.error("Diagnostics saved to: %s", diagnostics.output_dir)
        raise SystemExit(1) from e
    except UnknownStepError as e:
        diagnostics.write_error("UnknownStepError", f"Unknown step {e}", {"graph_file": args.graph})
        logger.error("Unknown step: %s", e)
        raise SystemExit(1) from e

    for skipped in result.omitted:
        logger.warning("Not included in fingerprint (missing or unresolvable): %s", skipped)

    print(result.value)
    if args.details:
        for component in result.components:
            print(f"  {component.value} | {component.category}:{component.name}")
        if args.diagnostics_dir is not None:
            diagnostics.write_breakdown(args.name, result)
    if args.details_csv is not None:
        result.to_frame().to_csv(args.details_csv, index=False)

    if not (args.check_cache or args.record):
        return

    index = CacheIndex(settings.cache_folder)
    current = index.is_current(args.name, result.value)
    if args.record:
        index.record(args.name, result.value)
    if args.check_cache and not current:
        raise SystemExit(EXIT_STALE)


if __name__ == "__main__":  # pragma: no cover
    main()
