"""Contract testing of live HTTP APIs against OpenAPI 3.x documents."""

__version__ = "1.0.0"

from .document import SchemaDocument
from .exceptions import (
    ContractError,
    CycleError,
    ParseError,
    TransportError,
    UnresolvedReferenceError,
    UnsatisfiableParameterError,
)
from .fixtures import Fixtures, RunContext, load_fixtures
from .models import (
    AllOfSchema,
    AnyOfSchema,
    AnySchema,
    ArraySchema,
    LiveRequest,
    LiveResponse,
    ObjectSchema,
    OperationSpec,
    Outcome,
    OutcomeStatus,
    ParameterSpec,
    PrimitiveSchema,
    ReferenceSchema,
    ResponseSpec,
    RunOptions,
    SchemaNode,
    ValidationResult,
    ViolationKind,
)
from .reporting import ConsoleReporter, ReportSink, RunReport, RunSummary
from .runner import ContractRunner, check_response
from .synthesizer import UNSET, RequestOverrides, RequestSynthesizer
from .transport import HttpxTransport, Transport
from .validator import SchemaValidator, validate

__all__ = [
    # Document
    "SchemaDocument",
    # Schema nodes
    "SchemaNode",
    "ObjectSchema",
    "ArraySchema",
    "PrimitiveSchema",
    "ReferenceSchema",
    "AnySchema",
    "AllOfSchema",
    "AnyOfSchema",
    # Operations and exchanges
    "OperationSpec",
    "ParameterSpec",
    "ResponseSpec",
    "LiveRequest",
    "LiveResponse",
    # Results
    "ValidationResult",
    "ViolationKind",
    "Outcome",
    "OutcomeStatus",
    "RunOptions",
    # Services
    "SchemaValidator",
    "validate",
    "RequestSynthesizer",
    "RequestOverrides",
    "UNSET",
    "Fixtures",
    "RunContext",
    "load_fixtures",
    "ContractRunner",
    "check_response",
    "Transport",
    "HttpxTransport",
    # Reporting
    "ReportSink",
    "RunReport",
    "ConsoleReporter",
    "RunSummary",
    # Exceptions
    "ContractError",
    "ParseError",
    "UnresolvedReferenceError",
    "UnsatisfiableParameterError",
    "TransportError",
    "CycleError",
]
