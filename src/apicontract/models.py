"""Data models for OpenAPI contract testing.

Schema nodes form a tagged variant (object, array, primitive, reference, plus
the composite forms found in real documents). Nodes are immutable once the
document is loaded; references are resolved by pointer string through a
``SchemaRegistry`` rather than inlined, so recursive schemas stay finite.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from .exceptions import UnresolvedReferenceError

PathElement = Union[str, int]
FieldPath = Tuple[PathElement, ...]

PRIMITIVE_KINDS = ("string", "number", "integer", "boolean")


def format_path(path: Sequence[PathElement]) -> str:
    """Render a field path in dotted/bracket notation.

    Example:
        >>> format_path(("items", 2, "price"))
        'items[2].price'
        >>> format_path(())
        '(root)'
    """
    rendered = ""
    for element in path:
        if isinstance(element, int):
            rendered += f"[{element}]"
        elif rendered:
            rendered += f".{element}"
        else:
            rendered = str(element)
    return rendered or "(root)"


class SchemaNode:
    """Base class for every schema node variant."""

    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


@dataclass(frozen=True)
class AnySchema(SchemaNode):
    """Schema without a declared type; accepts any value."""

    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


@dataclass(frozen=True)
class PrimitiveSchema(SchemaNode):
    """Scalar schema.

    Attributes:
        kind: One of "string", "number", "integer", "boolean"
        format: Optional format name (e.g. "date-time", "uuid")
    """

    kind: str
    format: Optional[str] = None
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


@dataclass(frozen=True)
class ObjectSchema(SchemaNode):
    """Object schema.

    Attributes:
        properties: Declared properties in document order
        required: Required property names in document order
        additional_properties: True (open), False (forbidden) or a schema
            that undeclared properties must satisfy
    """

    properties: Mapping[str, SchemaNode] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    additional_properties: Union[bool, SchemaNode] = True
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


@dataclass(frozen=True)
class ArraySchema(SchemaNode):
    """Array schema; every element must satisfy ``items``."""

    items: SchemaNode = field(default_factory=AnySchema)
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


@dataclass(frozen=True)
class AllOfSchema(SchemaNode):
    """Value must satisfy every part."""

    parts: Tuple[SchemaNode, ...] = ()
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


@dataclass(frozen=True)
class AnyOfSchema(SchemaNode):
    """Value must satisfy at least one variant (``anyOf`` and ``oneOf``)."""

    variants: Tuple[SchemaNode, ...] = ()
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    default: Any = None
    example: Any = None


class SchemaRegistry:
    """Pointer-keyed lookup of schema nodes.

    Populated once while the document loads and read-only afterwards.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, SchemaNode] = {}

    def __contains__(self, pointer: str) -> bool:
        return pointer in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def register(self, pointer: str, node: SchemaNode) -> None:
        self._nodes[pointer] = node

    def lookup(self, pointer: str) -> SchemaNode:
        """Return the node registered for ``pointer``.

        Raises:
            UnresolvedReferenceError: If nothing is registered under the pointer
        """
        try:
            return self._nodes[pointer]
        except KeyError:
            raise UnresolvedReferenceError(pointer) from None


@dataclass(frozen=True)
class ReferenceSchema(SchemaNode):
    """Lazily resolved ``$ref`` to another schema node.

    Attributes:
        pointer: Internal JSON pointer (e.g. "#/components/schemas/Node")
        registry: Registry the pointer is resolved against
    """

    pointer: str
    registry: SchemaRegistry = field(repr=False, compare=False, default_factory=SchemaRegistry)

    def resolve(self) -> SchemaNode:
        return self.registry.lookup(self.pointer)


@dataclass(frozen=True)
class ParameterSpec:
    """Operation parameter.

    Attributes:
        name: Parameter name
        location: "path", "query" or "header"
        required: Whether the parameter must be sent
        schema: Parameter schema, if declared
        example: Parameter-level example value, if declared
    """

    name: str
    location: str
    required: bool = False
    schema: Optional[SchemaNode] = None
    example: Any = None


@dataclass(frozen=True)
class ResponseSpec:
    """Declared response for a single status code."""

    status_code: int
    required_headers: Tuple[str, ...] = ()
    body_schema: Optional[SchemaNode] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class OperationSpec:
    """One (path, method) pair declared in the document."""

    method: str
    path_template: str
    path_params: Tuple[ParameterSpec, ...] = ()
    query_params: Tuple[ParameterSpec, ...] = ()
    header_params: Tuple[ParameterSpec, ...] = ()
    request_body_schema: Optional[SchemaNode] = None
    request_body_required: bool = False
    responses: Mapping[int, ResponseSpec] = field(default_factory=dict)
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    tags: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        """Operation identifier used in reports, e.g. "GET /products/{id}"."""
        return f"{self.method} {self.path_template}"


@dataclass(frozen=True)
class LiveRequest:
    """Concrete HTTP request built for one test."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class LiveResponse:
    """HTTP response as received from the transport.

    Attributes:
        status_code: HTTP status
        headers: Response headers
        body: Decoded JSON value, raw text for non-JSON bodies, None when empty
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


class ViolationKind(Enum):
    """Kinds of contract violation."""

    TYPE_MISMATCH = "TypeMismatch"
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    UNEXPECTED_STATUS = "UnexpectedStatus"
    MISSING_HEADER = "MissingHeader"
    ENUM_MISMATCH = "EnumMismatch"
    FORMAT_MISMATCH = "FormatMismatch"
    UNEXPECTED_PROPERTY = "UnexpectedProperty"


@dataclass(frozen=True)
class ValidationResult:
    """A single mismatch between an actual value and its contract."""

    path: FieldPath
    kind: ViolationKind
    expected: Any
    actual: Any

    @property
    def location(self) -> str:
        return format_path(self.path)

    def describe(self) -> str:
        return f"{self.kind.value} at {self.location}: expected {self.expected!r}, got {self.actual!r}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.location,
            "kind": self.kind.value,
            "expected": self.expected,
            "actual": self.actual,
        }


class OutcomeStatus(Enum):
    """Per-operation result status."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Outcome:
    """Result of testing one operation.

    Attributes:
        status: Pass, Fail, Error or Skipped
        violations: Collected violations (Fail only)
        message: Error description or skip reason
        status_code: HTTP status received, when a response arrived
        elapsed_ms: Time spent in the transport
    """

    status: OutcomeStatus
    violations: Tuple[ValidationResult, ...] = ()
    message: Optional[str] = None
    status_code: Optional[int] = None
    elapsed_ms: Optional[float] = None

    @classmethod
    def passed(cls, status_code: Optional[int] = None, elapsed_ms: Optional[float] = None) -> "Outcome":
        return cls(OutcomeStatus.PASS, status_code=status_code, elapsed_ms=elapsed_ms)

    @classmethod
    def failed(
        cls,
        violations: Sequence[ValidationResult],
        status_code: Optional[int] = None,
        elapsed_ms: Optional[float] = None,
    ) -> "Outcome":
        if not violations:
            raise ValueError("A failed outcome needs at least one violation")
        return cls(
            OutcomeStatus.FAIL,
            violations=tuple(violations),
            status_code=status_code,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def errored(cls, message: str, elapsed_ms: Optional[float] = None) -> "Outcome":
        return cls(OutcomeStatus.ERROR, message=message, elapsed_ms=elapsed_ms)

    @classmethod
    def skipped(cls, reason: str) -> "Outcome":
        return cls(OutcomeStatus.SKIPPED, message=reason)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value}
        if self.violations:
            data["violations"] = [violation.to_dict() for violation in self.violations]
        if self.message is not None:
            data["message"] = self.message
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.elapsed_ms is not None:
            data["elapsed_ms"] = round(self.elapsed_ms, 1)
        return data


@dataclass
class RunOptions:
    """Options for a contract run.

    Attributes:
        timeout_ms: Per-request deadline handed to the transport
        stop_on_first_failure: Stop dispatching after the first Fail or Error
        independent: Operations have no data dependencies; enables concurrent mode
        concurrency: Maximum in-flight operations in concurrent mode
        strict_properties: Flag undeclared response properties
        only: Operation names or ids to run; everything else is skipped
        headers: Headers sent with every request
    """

    timeout_ms: int = 5000
    stop_on_first_failure: bool = False
    independent: bool = False
    concurrency: int = 1
    strict_properties: bool = False
    only: Tuple[str, ...] = ()
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Validate options on initialization."""
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0 (got: {self.timeout_ms})")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1 (got: {self.concurrency})")
