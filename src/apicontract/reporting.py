"""Run reporting: streaming result sinks and report rendering."""

import datetime
import json
import logging
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple, Union

import markdown
import pdfkit
from colorlog.escape_codes import escape_codes

from .models import Outcome, OutcomeStatus

logger = logging.getLogger(__name__)


def _cell(text: Any) -> str:
    """Make a value safe inside a Markdown table cell."""
    return str(text).replace("|", "\\|")


@dataclass(frozen=True)
class ReportEntry:
    """One recorded operation result."""

    operation_id: str
    outcome: Outcome

    def to_dict(self) -> Dict[str, Any]:
        data = {"operation": self.operation_id}
        data.update(self.outcome.to_dict())
        return data


@dataclass(frozen=True)
class RunSummary:
    """Aggregated counts for a run."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    errored: int = 0
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.errored == 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "errored": self.errored,
            "skipped": self.skipped,
        }


class ReportSink:
    """Interface for anything that receives results during a run."""

    def record(self, operation_id: str, outcome: Outcome) -> None:
        raise NotImplementedError

    def summary(self) -> RunSummary:
        raise NotImplementedError

    def flush(self) -> None:
        """Push buffered output; called before a run returns or aborts."""
        pass


class RunReport(ReportSink):
    """In-memory, ordered record of a run.

    Entries keep the order they were recorded in: declaration order for
    sequential runs, completion order for concurrent ones. Recording is
    thread-safe.

    Example:
        >>> report = RunReport(title="Products API")
        >>> report.record("GET /products", Outcome.passed(200))
        >>> report.summary().passed
        1
        >>> report.exit_code()
        0
    """

    def __init__(self, title: str = "API contract run") -> None:
        self.title = title
        self.started_at = datetime.datetime.now()
        self._entries: List[ReportEntry] = []
        self._lock = threading.Lock()

    def record(self, operation_id: str, outcome: Outcome) -> None:
        entry = ReportEntry(operation_id, outcome)
        with self._lock:
            self._entries.append(entry)
        logger.debug(f"Recorded {outcome.status.value} for {operation_id}")
        self._on_record(entry)

    def _on_record(self, entry: ReportEntry) -> None:
        """Hook for streaming subclasses."""
        pass

    @property
    def entries(self) -> Tuple[ReportEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def summary(self) -> RunSummary:
        entries = self.entries
        counts = {status: 0 for status in OutcomeStatus}
        for entry in entries:
            counts[entry.outcome.status] += 1
        return RunSummary(
            total=len(entries),
            passed=counts[OutcomeStatus.PASS],
            failed=counts[OutcomeStatus.FAIL],
            errored=counts[OutcomeStatus.ERROR],
            skipped=counts[OutcomeStatus.SKIPPED],
        )

    def exit_code(self) -> int:
        """Process exit code: 0 only when nothing failed or errored."""
        return 0 if self.summary().ok else 1

    def problems(self) -> List[ReportEntry]:
        return [
            entry
            for entry in self.entries
            if entry.outcome.status in (OutcomeStatus.FAIL, OutcomeStatus.ERROR)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "started_at": self.started_at.isoformat(timespec="seconds"),
            "summary": self.summary().to_dict(),
            "results": [entry.to_dict() for entry in self.entries],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def write_json(self, path: Union[str, Path]) -> None:
        Path(path).write_text(self.to_json(), encoding="utf-8")
        logger.info(f"JSON report written to {path}")

    def generate_markdown(self) -> str:
        """Generates a Markdown report with every violation spelled out.

        Returns:
            A string containing the Markdown report.
        """
        summary = self.summary()
        report_lines = [
            f"# Contract Report: {self.title}",
            f"## {self.started_at.strftime('%H:%M %a %-d %B %Y')}",
            "",
            "| Total | Passed | Failed | Errored | Skipped |",
            "|-------|--------|--------|---------|---------|",
            f"| {summary.total} | {summary.passed} | {summary.failed} | {summary.errored} | {summary.skipped} |",
            "",
            "### Results",
            "",
            "| Operation | Outcome | Status | Time (ms) |",
            "|-----------|---------|--------|-----------|",
        ]
        for entry in self.entries:
            outcome = entry.outcome
            status_code = outcome.status_code if outcome.status_code is not None else "-"
            elapsed = f"{outcome.elapsed_ms:.0f}" if outcome.elapsed_ms is not None else "-"
            report_lines.append(
                f"| `{_cell(entry.operation_id)}` | {outcome.status.value.upper()} | {status_code} | {elapsed} |"
            )

        for entry in self.problems():
            report_lines.append(f"\n### {entry.operation_id}\n")
            if entry.outcome.status is OutcomeStatus.ERROR:
                report_lines.append(f"**Error:** {entry.outcome.message}")
                continue
            report_lines.append("| Path | Violation | Expected | Actual |")
            report_lines.append("|------|-----------|----------|--------|")
            for violation in entry.outcome.violations:
                report_lines.append(
                    f"| `{_cell(violation.location)}` | {violation.kind.value}"
                    f" | `{_cell(repr(violation.expected))}` | `{_cell(repr(violation.actual))}` |"
                )

        return "\n".join(report_lines)

    def write_markdown(self, path: Union[str, Path]) -> None:
        Path(path).write_text(self.generate_markdown(), encoding="utf-8")
        logger.info(f"Markdown report written to {path}")

    def generate_html(self) -> str:
        return self._convert_markdown_to_html(self.generate_markdown())

    def write_html(self, path: Union[str, Path]) -> None:
        Path(path).write_text(self.generate_html(), encoding="utf-8")
        logger.info(f"HTML report written to {path}")

    def generate_pdf(self, page_size: str = "A4", orientation: str = "landscape") -> bytes:
        """Generates a PDF of the Markdown report (requires wkhtmltopdf).

        Args:
            page_size: The page size of the PDF (default is 'A4').
            orientation: The orientation of the PDF (default is 'landscape').

        Returns:
            A bytes object containing the PDF data.
        """
        pdf_options = {
            "page-size": page_size,
            "orientation": orientation,
        }
        return pdfkit.from_string(self.generate_html(), False, options=pdf_options)

    def write_pdf(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.generate_pdf())
        logger.info(f"PDF report written to {path}")

    def _convert_markdown_to_html(self, markdown_content: str) -> str:
        styles = """
        <style>
            body {
                font-family: Arial, sans-serif;
            }
            h1, h2, h3 {
                color: #333;
                margin-bottom: 16px;
            }
            table {
                width: 100%;
                border-collapse: collapse;
                margin-bottom: 20px;
            }
            th, td {
                border: 1px solid #ddd;
                padding: 8px;
                text-align: left;
            }
            th {
                background-color: #f2f2f2;
            }
        </style>
        """

        return f"""
        <!DOCTYPE html>
        <html lang="en">
        <head>
            <meta charset="UTF-8">
            <title>{self.title}</title>
            {styles}
        </head>
        <body>
            {markdown.markdown(markdown_content, extensions=['tables'])}
        </body>
        </html>
        """


_STATUS_COLORS = {
    OutcomeStatus.PASS: "bold_green",
    OutcomeStatus.FAIL: "bold_red",
    OutcomeStatus.ERROR: "bold_purple",
    OutcomeStatus.SKIPPED: "bold_yellow",
}


class ConsoleReporter(RunReport):
    """RunReport that prints each result as soon as it is recorded."""

    def __init__(
        self,
        title: str = "API contract run",
        stream: Optional[TextIO] = None,
        color: Optional[bool] = None,
    ) -> None:
        super().__init__(title)
        self.stream = stream or sys.stdout
        self.color = self.stream.isatty() if color is None else color

    def _paint(self, text: str, color: str) -> str:
        if not self.color:
            return text
        return f"{escape_codes[color]}{text}{escape_codes['reset']}"

    def _on_record(self, entry: ReportEntry) -> None:
        outcome = entry.outcome
        label = self._paint(f"{outcome.status.value.upper():<7}", _STATUS_COLORS[outcome.status])
        details = []
        if outcome.status_code is not None:
            details.append(str(outcome.status_code))
        if outcome.elapsed_ms is not None:
            details.append(f"{outcome.elapsed_ms:.0f}ms")
        suffix = f" ({', '.join(details)})" if details else ""

        lines = [f"{label} {entry.operation_id}{suffix}"]
        if outcome.message:
            lines.append(f"        {outcome.message}")
        for violation in outcome.violations:
            lines.append(f"        - {violation.describe()}")

        with self._lock:
            print("\n".join(lines), file=self.stream)

    def print_summary(self) -> None:
        summary = self.summary()
        print(file=self.stream)
        print("=" * 70, file=self.stream)
        print("CONTRACT RUN SUMMARY", file=self.stream)
        print("=" * 70, file=self.stream)
        print(f"Total:    {summary.total}", file=self.stream)
        print(f"Passed:   {summary.passed}", file=self.stream)
        print(f"Failed:   {summary.failed}", file=self.stream)
        print(f"Errored:  {summary.errored}", file=self.stream)
        print(f"Skipped:  {summary.skipped}", file=self.stream)
        print("=" * 70, file=self.stream)

    def flush(self) -> None:
        self.stream.flush()
