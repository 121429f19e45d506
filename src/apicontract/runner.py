"""Contract run orchestration.

Sequential by default: operations run one at a time in document order so that
fixtures can chain data from earlier responses. When operations are declared
independent, ``run`` switches to asyncio worker tasks bounded by a semaphore;
transport calls then run in worker threads and results reach the sink in
completion order, not declaration order.
"""

import asyncio
import logging
import threading
import time
from typing import List, Optional

from .document import SchemaDocument
from .exceptions import CycleError, TransportError, UnsatisfiableParameterError
from .fixtures import Fixtures, RunContext
from .models import (
    LiveRequest,
    LiveResponse,
    OperationSpec,
    Outcome,
    OutcomeStatus,
    RunOptions,
    ValidationResult,
    ViolationKind,
)
from .reporting import ReportSink, RunSummary
from .synthesizer import RequestSynthesizer
from .transport import Transport
from .validator import SchemaValidator

logger = logging.getLogger(__name__)


def check_response(
    operation: OperationSpec, response: LiveResponse, validator: SchemaValidator
) -> List[ValidationResult]:
    """Validate a live response against the operation's declared responses.

    An undeclared status yields exactly one UnexpectedStatus violation and
    the body is not checked against anything.

    Raises:
        CycleError: If body validation re-enters a reference cycle
    """
    declared = operation.responses.get(response.status_code)
    if declared is None:
        return [
            ValidationResult(
                path=(),
                kind=ViolationKind.UNEXPECTED_STATUS,
                expected=sorted(operation.responses),
                actual=response.status_code,
            )
        ]

    violations: List[ValidationResult] = []
    for name in declared.required_headers:
        if response.header(name) is None:
            violations.append(ValidationResult((name,), ViolationKind.MISSING_HEADER, name, None))

    if declared.body_schema is not None:
        violations.extend(validator.validate(response.body, declared.body_schema))
    return violations


class ContractRunner:
    """Runs every operation of a document against a live API.

    Attributes:
        base_url: API root requests are sent to
        fixtures: Per-operation overrides for this runner's runs

    Example:
        >>> document = SchemaDocument.from_file("openapi.yaml")
        >>> report = ConsoleReporter(title=document.title)
        >>> with HttpxTransport() as transport:
        ...     runner = ContractRunner("http://localhost:3000")
        ...     summary = runner.run(document, transport, report, RunOptions())
        >>> summary.ok
        True
    """

    def __init__(self, base_url: str, fixtures: Optional[Fixtures] = None):
        self.base_url = base_url
        self.fixtures = fixtures or Fixtures()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop dispatching new requests; in-flight requests finish or time out."""
        if not self._cancelled.is_set():
            logger.warning("Contract run cancelled; no further requests will be dispatched")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(
        self,
        document: SchemaDocument,
        transport: Transport,
        sink: ReportSink,
        options: Optional[RunOptions] = None,
    ) -> RunSummary:
        """Test every operation and record one outcome per operation.

        Must not be called from inside a running event loop when
        ``options.independent`` is set; use ``run_async`` there.

        Returns:
            The sink's summary after the run
        """
        options = options or RunOptions()
        if options.independent:
            return asyncio.run(self.run_async(document, transport, sink, options))

        self._cancelled.clear()
        synthesizer = RequestSynthesizer(self.base_url, options.headers)
        validator = SchemaValidator(strict=options.strict_properties)
        context = RunContext()

        logger.info(f"Starting sequential contract run against {self.base_url}")
        try:
            for operation in document.operations():
                if self.cancelled:
                    break
                outcome = self._test_operation(operation, transport, synthesizer, validator, context, options)
                sink.record(operation.name, outcome)
                if options.stop_on_first_failure and outcome.status in (OutcomeStatus.FAIL, OutcomeStatus.ERROR):
                    logger.info(f"Stopping after first failure: {operation.name}")
                    break
        finally:
            sink.flush()

        summary = sink.summary()
        logger.info(
            f"Contract run complete: {summary.passed} passed, {summary.failed} failed, "
            f"{summary.errored} errored, {summary.skipped} skipped"
        )
        return summary

    async def run_async(
        self,
        document: SchemaDocument,
        transport: Transport,
        sink: ReportSink,
        options: Optional[RunOptions] = None,
    ) -> RunSummary:
        """Concurrent run for independent operations.

        At most ``options.concurrency`` operations are in flight. If the
        awaiting task is cancelled, queued operations are abandoned, in-flight
        ones are awaited and the sink is flushed before re-raising.
        """
        options = options or RunOptions(independent=True)
        self._cancelled.clear()
        synthesizer = RequestSynthesizer(self.base_url, options.headers)
        validator = SchemaValidator(strict=options.strict_properties)
        context = RunContext()
        semaphore = asyncio.Semaphore(options.concurrency)

        async def worker(operation: OperationSpec) -> None:
            async with semaphore:
                if self.cancelled:
                    return
                outcome = await asyncio.to_thread(
                    self._test_operation, operation, transport, synthesizer, validator, context, options
                )
                sink.record(operation.name, outcome)
                if options.stop_on_first_failure and outcome.status in (OutcomeStatus.FAIL, OutcomeStatus.ERROR):
                    self.cancel()

        logger.info(
            f"Starting concurrent contract run against {self.base_url} "
            f"(concurrency {options.concurrency})"
        )
        tasks = [asyncio.create_task(worker(operation)) for operation in document.operations()]
        try:
            # Workers must survive cancellation of this coroutine, so no gather()
            if tasks:
                await asyncio.wait(tasks)
        except asyncio.CancelledError:
            self.cancel()
            if tasks:
                await asyncio.wait(tasks)
            raise
        finally:
            sink.flush()

        for task in tasks:
            # Surface unexpected worker failures
            task.result()

        summary = sink.summary()
        logger.info(
            f"Contract run complete: {summary.passed} passed, {summary.failed} failed, "
            f"{summary.errored} errored, {summary.skipped} skipped"
        )
        return summary

    def _test_operation(
        self,
        operation: OperationSpec,
        transport: Transport,
        synthesizer: RequestSynthesizer,
        validator: SchemaValidator,
        context: RunContext,
        options: RunOptions,
    ) -> Outcome:
        if options.only and not ({operation.name, operation.operation_id} & set(options.only)):
            return Outcome.skipped("not selected")

        try:
            overrides = self.fixtures.for_operation(operation, context)
        except Exception as e:
            logger.error(f"Fixture for {operation.name} failed: {e}")
            return Outcome.errored(f"fixture failed: {e}")
        if overrides is not None and overrides.skip:
            return Outcome.skipped("skipped by fixture")

        try:
            request: LiveRequest = synthesizer.synthesize(operation, overrides)
        except UnsatisfiableParameterError as e:
            logger.error(str(e))
            return Outcome.errored(str(e))

        started = time.monotonic()
        try:
            response = transport.send(request, options.timeout_ms)
        except TransportError as e:
            elapsed_ms = (time.monotonic() - started) * 1000
            logger.error(f"Transport failure for {operation.name}: {e}")
            return Outcome.errored(str(e), elapsed_ms=elapsed_ms)
        except Exception as e:
            elapsed_ms = (time.monotonic() - started) * 1000
            logger.exception(f"Unexpected transport failure for {operation.name}")
            return Outcome.errored(f"{type(e).__name__}: {e}", elapsed_ms=elapsed_ms)
        elapsed_ms = (time.monotonic() - started) * 1000

        context.remember(operation, response)

        try:
            violations = check_response(operation, response, validator)
        except CycleError as e:
            logger.error(f"Schema cycle while validating {operation.name}: {e}")
            return Outcome.errored(str(e), elapsed_ms=elapsed_ms)

        if violations:
            logger.debug(f"{operation.name}: {len(violations)} violations")
            return Outcome.failed(violations, status_code=response.status_code, elapsed_ms=elapsed_ms)
        return Outcome.passed(status_code=response.status_code, elapsed_ms=elapsed_ms)
