"""
apicontract CLI - Command Line Interface

Runs every operation of an OpenAPI document against a live API and exits
non-zero when any operation failed or errored.
"""

import argparse
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .config import RunnerConfig
from .document import SchemaDocument
from .exceptions import ContractError, ParseError, UnresolvedReferenceError
from .fixtures import Fixtures, load_fixtures
from .logger import setup_logging
from .reporting import ConsoleReporter, RunReport
from .runner import ContractRunner
from .transport import HttpxTransport

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """
    Create argument parser for CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="apicontract",
        description="Validate a live HTTP API against its OpenAPI 3.x document",
        epilog="Example: apicontract openapi.yaml http://localhost:3000 --fixtures fixtures.yaml",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("document", metavar="DOCUMENT", help="Path to the OpenAPI document (YAML or JSON)")
    parser.add_argument(
        "base_url",
        metavar="BASE_URL",
        nargs="?",
        help="API root URL (default: CONTRACT_BASE_URL, then the document's servers)",
    )

    parser.add_argument("--fixtures", metavar="FILE", help="YAML/JSON file with per-operation overrides")
    parser.add_argument("--timeout-ms", type=int, metavar="MS", help="Per-request timeout (default: 5000)")
    parser.add_argument(
        "--stop-on-first-failure",
        action="store_true",
        help="Stop after the first failed or errored operation",
    )
    parser.add_argument(
        "--independent",
        action="store_true",
        help="Operations have no data dependencies; run them concurrently",
    )
    parser.add_argument("--concurrency", type=int, metavar="N", help="Maximum in-flight operations (default: 1)")
    parser.add_argument("--strict", action="store_true", help="Flag response properties the document does not declare")
    parser.add_argument(
        "--only",
        action="append",
        default=[],
        metavar="OPERATION",
        help="Run only this operation (name like 'GET /products' or operationId); repeatable",
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Header sent with every request; repeatable",
    )

    parser.add_argument("--json", metavar="FILE", help="Write a JSON report")
    parser.add_argument("--markdown", metavar="FILE", help="Write a Markdown report")
    parser.add_argument("--html", metavar="FILE", help="Write an HTML report")
    parser.add_argument("--pdf", metavar="FILE", help="Write a PDF report (requires wkhtmltopdf)")

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def parse_headers(values: List[str]) -> Dict[str, str]:
    """
    Parse repeated ``--header 'Name: value'`` arguments.

    Raises:
        ValueError: If a header has no colon or an empty name
    """
    headers = {}
    for raw in values:
        name, separator, value = raw.partition(":")
        if not separator or not name.strip():
            raise ValueError(f"Invalid header (expected 'Name: value'): {raw!r}")
        headers[name.strip()] = value.strip()
    return headers


def validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate CLI arguments.

    Raises:
        ValueError: If arguments are invalid
    """
    document_path = Path(args.document)
    if not document_path.is_file():
        raise ValueError(f"Document not found: {args.document}")

    if args.fixtures and not Path(args.fixtures).is_file():
        raise ValueError(f"Fixtures file not found: {args.fixtures}")

    if args.timeout_ms is not None and args.timeout_ms <= 0:
        raise ValueError(f"Timeout must be > 0 (got: {args.timeout_ms})")

    if args.concurrency is not None and args.concurrency < 1:
        raise ValueError(f"Concurrency must be >= 1 (got: {args.concurrency})")

    if args.concurrency and args.concurrency > 1 and not args.independent:
        logger.warning("--concurrency only applies with --independent; running sequentially")


def resolve_base_url(args: argparse.Namespace, config: RunnerConfig, document: SchemaDocument) -> str:
    """
    Pick the base URL: argument, then environment, then the document's servers.

    Raises:
        ValueError: If none is available
    """
    base_url = args.base_url or config.base_url or document.base_url
    if not base_url:
        raise ValueError("No base URL given and the document declares no absolute server URL")
    return base_url


def display_progress_header(document: SchemaDocument, base_url: str, independent: bool) -> None:
    print()
    print("=" * 70)
    print("API CONTRACT RUN")
    print("=" * 70)
    print(f"Document:    {document.title or '(untitled)'} {document.version}")
    print(f"Operations:  {len(document)}")
    print(f"Base URL:    {base_url}")
    print(f"Mode:        {'concurrent' if independent else 'sequential'}")
    print(f"Started:     {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)
    print()


def display_error(error: Exception) -> None:
    """
    Display error message with appropriate context.

    Args:
        error: Exception that occurred
    """
    print()
    print("=" * 70)
    print("ERROR")
    print("=" * 70)

    if isinstance(error, UnresolvedReferenceError):
        print(f"Unresolved reference: {error.pointer}")
        print()
        print("Every $ref in the document must point at an existing component.")

    elif isinstance(error, ParseError):
        print(f"Document parsing failed: {error}")
        print()
        print("Please check that the document is valid YAML/JSON and declares 'openapi: 3.x'.")

    elif isinstance(error, (ValueError, FileNotFoundError)):
        print(f"Invalid configuration: {error}")

    else:
        print(f"Unexpected error: {error}")
        print()
        print("Please check the logs for more details.")

    print("=" * 70)
    print()


def write_reports(args: argparse.Namespace, report: RunReport) -> None:
    if args.json:
        report.write_json(args.json)
    if args.markdown:
        report.write_markdown(args.markdown)
    if args.html:
        report.write_html(args.html)
    if args.pdf:
        report.write_pdf(args.pdf)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 when nothing failed or errored, 1 otherwise)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(verbose=args.verbose)
        validate_arguments(args)
        config = RunnerConfig.from_environment()
        options = config.to_run_options(independent=args.independent)
        if args.timeout_ms is not None:
            options.timeout_ms = args.timeout_ms
        if args.concurrency is not None:
            options.concurrency = args.concurrency
        options.strict_properties = options.strict_properties or args.strict
        options.stop_on_first_failure = options.stop_on_first_failure or args.stop_on_first_failure
        options.only = tuple(args.only)
        options.headers = parse_headers(args.header)

        document = SchemaDocument.from_file(args.document)
        base_url = resolve_base_url(args, config, document)

        fixtures_path = args.fixtures or config.fixtures_path
        fixtures = load_fixtures(fixtures_path) if fixtures_path else Fixtures()
    except (ContractError, ValueError, OSError) as e:
        display_error(e)
        if args.verbose:
            logger.exception("Detailed error traceback:")
        return 1

    display_progress_header(document, base_url, options.independent)

    report = ConsoleReporter(title=document.title or args.document)
    runner = ContractRunner(base_url, fixtures)
    # CI aborts arrive as SIGTERM: finish in-flight requests, dispatch nothing new
    previous_handler = signal.signal(signal.SIGTERM, lambda signum, frame: runner.cancel())

    interrupted = False
    try:
        with HttpxTransport() as transport:
            runner.run(document, transport, report, options)
    except KeyboardInterrupt:
        interrupted = True
        print()
        print("=" * 70)
        print("INTERRUPTED")
        print("=" * 70)
        print("Contract run cancelled; the report below is partial")
        print("=" * 70)
    except Exception:
        logger.exception("Fatal error during contract run")
        return 1
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)

    report.print_summary()
    write_reports(args, report)

    if interrupted or runner.cancelled:
        return 1
    return report.exit_code()


if __name__ == "__main__":
    sys.exit(main())
