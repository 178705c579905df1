"""CLI commands for repository analysis."""

import argparse
import logging
import sys
import threading
from pathlib import Path

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Analyze the structure of a GitHub repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # analyze subcommand
    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Fetch a repository and write its structural analysis",
    )
    analyze_parser.add_argument(
        "repository",
        help="owner/name, owner/name@ref, or a github.com URL",
    )
    analyze_parser.add_argument(
        "--ref",
        default=None,
        help="Branch, tag or commit (default: the repository's default branch)",
    )
    analyze_parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory (default: output/<repository name>)",
    )
    analyze_parser.add_argument(
        "--chunk-max-bytes",
        type=_positive_int,
        default=None,
        help="Maximum chunk size in UTF-8 bytes (default: CHUNK_MAX_BYTES or 100000)",
    )
    analyze_parser.add_argument(
        "--max-concurrent-requests",
        type=_positive_int,
        default=None,
        help="Maximum requests in flight (default: MAX_CONCURRENT_REQUESTS or 4)",
    )
    analyze_parser.add_argument(
        "--retry-attempts",
        type=_positive_int,
        default=None,
        help="Attempts per request for transient failures (default: RETRY_ATTEMPTS or 3)",
    )
    analyze_parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="GLOB",
        help="Additional exclusion glob (repeatable)",
    )
    analyze_parser.add_argument(
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    if args.command == "analyze":
        _configure_logging(args.verbose)
        return _analyze(args)

    parser.print_help()
    return EXIT_ERROR


def _analyze(args) -> int:
    from .errors import Cancelled, FetchFailed, InvalidRepositoryRef, InvariantViolation
    from .export import write_report
    from .pipeline import analyze_repository
    from .settings import get_settings
    from .utils import parse_repository

    settings = get_settings()
    overrides = {
        "chunk_max_bytes": args.chunk_max_bytes,
        "max_concurrent_requests": args.max_concurrent_requests,
        "retry_attempts": args.retry_attempts,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.exclude:
        overrides["exclusion_patterns"] = [*settings.exclusion_patterns, *args.exclude]
    settings = settings.model_copy(update=overrides)

    cancel = threading.Event()
    try:
        repository = parse_repository(args.repository, args.ref)
        report = analyze_repository(repository, settings=settings, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        print("\nCancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except Cancelled:
        print("\nCancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except (InvalidRepositoryRef, InvariantViolation, FetchFailed) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    output_dir = args.output_dir or (Path("output") / repository.name)
    write_report(report, output_dir, max_bytes=settings.chunk_max_bytes)

    summary = report.graph.summary
    print(f"Analyzed {report.graph.ref}")
    print(
        f"Done: {summary.files_analyzed} files, {len(report.graph.items)} items, "
        f"{len(report.graph.edges)} edges, {summary.warnings} warnings"
    )
    print(
        f"Public types: {summary.public_types}, public functions: {summary.public_functions}, "
        f"tests: {summary.tests}"
    )
    print(f"Wrote {len(report.chunks)} chunks to {output_dir}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
