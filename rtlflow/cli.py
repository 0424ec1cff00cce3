"""Command line interface for rtlflow."""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Iterable, Optional

from .configuration import get_settings
from .errors import ConfigurationError, OverwriteRefusedError, RtlFlowError
from .runner import DocumentRunner, RunSummary, validate_paths
from .settings import ENABLED_KEY, JsonSettingsStore, SettingsStore
from .structures import EngineConfig

OUTPUT_SUFFIX = "_rtl"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rtlflow",
        description=(
            "Apply right-to-left direction and alignment to Arabic content in HTML documents."
        ),
    )
    parser.add_argument(
        "input_file",
        help="Path to the HTML file to correct.",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending '_rtl' to the input name.",
    )
    parser.add_argument(
        "-t",
        "--threshold",
        type=float,
        help="Minimum ratio of Arabic letters (0-1) for non-text elements.",
    )
    parser.add_argument(
        "--no-visual-feedback",
        action="store_true",
        help="Do not add a transition to styled elements.",
    )
    parser.add_argument(
        "--no-iframes",
        action="store_true",
        help="Do not descend into embedded srcdoc frames.",
    )
    parser.add_argument(
        "--settings",
        help="JSON file holding the shared enabled flag.",
    )
    parser.add_argument(
        "--set-enabled",
        choices=("on", "off"),
        help="Store the shared enabled flag before running.",
    )
    parser.add_argument(
        "--stats-only",
        action="store_true",
        help="Report statistics without writing an output file.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    return parser


def derive_output_path(input_path: pathlib.Path) -> pathlib.Path:
    return input_path.with_name(f"{input_path.stem}{OUTPUT_SUFFIX}{input_path.suffix}")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def execute_run(
    *,
    input_file: str,
    output_file: str | None,
    config: EngineConfig,
    settings_store: SettingsStore | None,
    force_overwrite: bool,
    stats_only: bool,
) -> tuple[int, RunSummary | None, str | None]:
    """Execute a correction run and return the exit code, summary, and message."""

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path: pathlib.Path | None = None
    if not stats_only:
        output_path = (
            pathlib.Path(output_file).expanduser().resolve()
            if output_file
            else derive_output_path(input_path)
        )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except FileNotFoundError as exc:
        return 1, None, str(exc)
    except OverwriteRefusedError as exc:
        return 1, None, str(exc)
    except RtlFlowError as exc:
        return 1, None, str(exc)

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    runner = DocumentRunner(
        input_path=input_path,
        output_path=output_path,
        config=config,
        settings_store=settings_store,
    )

    try:
        summary = runner.run()
    except RtlFlowError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Run interrupted by user."

    return 0, summary, None


def print_summary(summary: RunSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nDirection correction complete.")
    print(f"  Input file:      {summary.input_path}")
    if summary.output_path is not None:
        print(f"  Output file:     {summary.output_path}")
    print(f"  Engine:          {'enabled' if summary.enabled else 'disabled'}")
    print(
        f"  Styled elements: {summary.stats.total_processed} "
        f"of {summary.total_elements} "
        f"(average ratio {summary.stats.average_ratio:.2f})"
    )
    for category, count in sorted(summary.stats.categories.items()):
        print(f"    {category:<14} {count}")
    if summary.embedded_documents:
        print(
            f"  Frames:          {summary.embedded_documents} embedded documents, "
            f"{summary.frame_stats.total_processed} styled elements in total"
        )
    print(f"  Work slices:     {summary.slices} over {summary.frames} frames")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.total_errors:
        print("  Notes:")
        for message in summary.error_messages:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.verbose)

    try:
        settings = get_settings()
        config = settings.engine_config(
            rtl_threshold=args.threshold,
            visual_feedback=False if args.no_visual_feedback else None,
            iframe_handling=False if args.no_iframes else None,
        )
    except ConfigurationError as exc:
        print(exc)
        return 1
    except ValueError as exc:
        print(f"Invalid option: {exc}")
        return 1

    settings_path = args.settings or settings.RTLFLOW_SETTINGS_PATH
    store: SettingsStore | None = None
    if settings_path or args.set_enabled:
        try:
            store = (
                JsonSettingsStore(pathlib.Path(settings_path).expanduser())
                if settings_path
                else SettingsStore()
            )
        except ConfigurationError as exc:
            print(exc)
            return 1
        if args.set_enabled:
            store.set({ENABLED_KEY: args.set_enabled == "on"})

    exit_code, summary, message = execute_run(
        input_file=args.input_file,
        output_file=args.output,
        config=config,
        settings_store=store,
        force_overwrite=args.force,
        stats_only=args.stats_only,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
