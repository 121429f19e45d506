"""Structural validation of JSON values against schema nodes.

All violations at every depth are collected; validation never stops at the
first problem. Reference nodes are resolved through the registry on demand and
re-entering the same pointer without consuming a value raises ``CycleError``.
"""

import ipaddress
import logging
import re
import uuid
from typing import Any, Callable, Dict, FrozenSet, List
from urllib.parse import urlparse

from dateutil import parser as date_parser

from .exceptions import CycleError
from .models import (
    AllOfSchema,
    AnyOfSchema,
    AnySchema,
    ArraySchema,
    FieldPath,
    ObjectSchema,
    PrimitiveSchema,
    ReferenceSchema,
    SchemaNode,
    ValidationResult,
    ViolationKind,
    format_path,
)

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def json_type_name(value: Any) -> str:
    """Name the JSON type of a decoded value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def matches_kind(value: Any, kind: str) -> bool:
    """Check a scalar against a primitive kind.

    ``integer`` accepts whole-number floats (``5.0``) but rejects fractional
    ones; ``number`` accepts both. Booleans are never numbers.
    """
    if kind == "string":
        return isinstance(value, str)
    if kind == "boolean":
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if kind == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if kind == "number":
        return isinstance(value, (int, float))
    return False


def json_equal(left: Any, right: Any) -> bool:
    """Compare decoded JSON values without Python's bool/int equivalence."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(json_equal(left[key], right[key]) for key in left)
    return left == right


def _is_date_time(value: str) -> bool:
    if "T" not in value.upper():
        return False
    try:
        date_parser.isoparse(value)
    except ValueError:
        return False
    return True


def _is_date(value: str) -> bool:
    if not _DATE_PATTERN.match(value):
        return False
    try:
        date_parser.isoparse(value)
    except ValueError:
        return False
    return True


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _is_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and (parsed.netloc or parsed.path))


def _is_ip(version: int) -> Callable[[str], bool]:
    def check(value: str) -> bool:
        try:
            return ipaddress.ip_address(value).version == version
        except ValueError:
            return False

    return check


FORMAT_CHECKS: Dict[str, Callable[[str], bool]] = {
    "date-time": _is_date_time,
    "date": _is_date,
    "uuid": _is_uuid,
    "email": lambda value: bool(_EMAIL_PATTERN.match(value)),
    "uri": _is_uri,
    "ipv4": _is_ip(4),
    "ipv6": _is_ip(6),
}


def _declared_names(schema: SchemaNode, seen: FrozenSet[str]) -> FrozenSet[str]:
    """Collect property names an object-like schema declares, through allOf and references."""
    if isinstance(schema, ReferenceSchema):
        if schema.pointer in seen:
            return frozenset()
        return _declared_names(schema.resolve(), seen | {schema.pointer})
    if isinstance(schema, ObjectSchema):
        return frozenset(schema.properties)
    if isinstance(schema, AllOfSchema):
        names: FrozenSet[str] = frozenset()
        for part in schema.parts:
            names = names | _declared_names(part, seen)
        return names
    return frozenset()


def _unique(results: List[ValidationResult]) -> List[ValidationResult]:
    # allOf parts can report the same problem at the same path
    seen = set()
    unique = []
    for result in results:
        key = (result.path, result.kind, repr(result.expected), repr(result.actual))
        if key not in seen:
            seen.add(key)
            unique.append(result)
    return unique


class SchemaValidator:
    """Validates decoded JSON values against SchemaNode graphs.

    Stateless apart from its strictness setting, so one instance can be shared
    across concurrent validations.

    Attributes:
        strict: Flag undeclared object properties even where the document
            leaves ``additionalProperties`` open

    Example:
        >>> schema = ObjectSchema(
        ...     properties={"price": PrimitiveSchema(kind="number")},
        ...     required=("price",),
        ... )
        >>> [r.describe() for r in SchemaValidator().validate({"price": "19.99"}, schema)]
        ["TypeMismatch at price: expected 'number', got 'string'"]
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def validate(self, value: Any, schema: SchemaNode) -> List[ValidationResult]:
        """Validate ``value`` against ``schema``.

        Returns:
            Every violation found; an empty list means the value is valid

        Raises:
            CycleError: If a reference cycle is re-entered without consuming a value
        """
        results: List[ValidationResult] = []
        self._validate(value, schema, (), frozenset(), results)
        return _unique(results)

    def is_valid(self, value: Any, schema: SchemaNode) -> bool:
        return not self.validate(value, schema)

    def _validate(
        self,
        value: Any,
        schema: SchemaNode,
        path: FieldPath,
        pending_refs: FrozenSet[str],
        results: List[ValidationResult],
        siblings: FrozenSet[str] = frozenset(),
    ) -> None:
        # pending_refs holds pointers entered since the last concrete value;
        # siblings holds property names declared by enclosing allOf parts
        if isinstance(schema, ReferenceSchema):
            if schema.pointer in pending_refs:
                raise CycleError(schema.pointer, format_path(path))
            self._validate(value, schema.resolve(), path, pending_refs | {schema.pointer}, results, siblings)
            return

        if value is None and schema.nullable:
            return

        if isinstance(schema, AllOfSchema):
            declared = siblings | _declared_names(schema, frozenset())
            for part in schema.parts:
                self._validate(value, part, path, pending_refs, results, declared)
        elif isinstance(schema, AnyOfSchema):
            self._validate_any_of(value, schema, path, pending_refs, results)
        elif isinstance(schema, ObjectSchema):
            self._validate_object(value, schema, path, results, siblings)
        elif isinstance(schema, ArraySchema):
            self._validate_array(value, schema, path, results)
        elif isinstance(schema, PrimitiveSchema):
            self._validate_primitive(value, schema, path, results)
            return
        elif not isinstance(schema, AnySchema):
            raise TypeError(f"Unsupported schema node: {type(schema).__name__}")

        self._check_enum(value, schema, path, results)

    def _validate_any_of(self, value, schema, path, pending_refs, results) -> None:
        for variant in schema.variants:
            trial: List[ValidationResult] = []
            self._validate(value, variant, path, pending_refs, trial)
            if not trial:
                return
        results.append(
            ValidationResult(
                path=path,
                kind=ViolationKind.TYPE_MISMATCH,
                expected=f"one of {len(schema.variants)} variants",
                actual=json_type_name(value),
            )
        )

    def _validate_object(self, value, schema: ObjectSchema, path, results, siblings=frozenset()) -> None:
        if not isinstance(value, dict):
            results.append(ValidationResult(path, ViolationKind.TYPE_MISMATCH, "object", json_type_name(value)))
            return

        for name in schema.required:
            if name not in value:
                results.append(
                    ValidationResult(path + (name,), ViolationKind.MISSING_REQUIRED_FIELD, name, None)
                )

        for name, item in value.items():
            declared = schema.properties.get(name)
            if declared is not None:
                self._validate(item, declared, path + (name,), frozenset(), results)
            elif name in siblings:
                continue
            elif isinstance(schema.additional_properties, SchemaNode):
                self._validate(item, schema.additional_properties, path + (name,), frozenset(), results)
            elif schema.additional_properties is False or self.strict:
                results.append(
                    ValidationResult(
                        path + (name,),
                        ViolationKind.UNEXPECTED_PROPERTY,
                        sorted(set(schema.properties) | siblings),
                        name,
                    )
                )

    def _validate_array(self, value, schema: ArraySchema, path, results) -> None:
        if not isinstance(value, list):
            results.append(ValidationResult(path, ViolationKind.TYPE_MISMATCH, "array", json_type_name(value)))
            return
        for index, item in enumerate(value):
            self._validate(item, schema.items, path + (index,), frozenset(), results)

    def _validate_primitive(self, value, schema: PrimitiveSchema, path, results) -> None:
        if not matches_kind(value, schema.kind):
            results.append(ValidationResult(path, ViolationKind.TYPE_MISMATCH, schema.kind, json_type_name(value)))
            return

        self._check_enum(value, schema, path, results)

        check = FORMAT_CHECKS.get(schema.format or "")
        if check is not None and isinstance(value, str) and not check(value):
            results.append(ValidationResult(path, ViolationKind.FORMAT_MISMATCH, schema.format, value))

    def _check_enum(self, value, schema: SchemaNode, path, results) -> None:
        if schema.enum is not None and not any(json_equal(value, member) for member in schema.enum):
            results.append(ValidationResult(path, ViolationKind.ENUM_MISMATCH, list(schema.enum), value))


def validate(value: Any, schema: SchemaNode, strict: bool = False) -> List[ValidationResult]:
    """Convenience wrapper around ``SchemaValidator.validate``."""
    return SchemaValidator(strict=strict).validate(value, schema)
