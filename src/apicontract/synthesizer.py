"""Request synthesis from operation definitions.

Values come from explicit overrides first, then from what the document
declares (examples, defaults, enums) and finally from a deterministic table
keyed by primitive kind. Anything that still cannot be filled raises
``UnsatisfiableParameterError`` for that operation only.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional
from urllib.parse import quote, urlencode

from .exceptions import UnsatisfiableParameterError
from .models import (
    AllOfSchema,
    AnyOfSchema,
    AnySchema,
    ArraySchema,
    LiveRequest,
    ObjectSchema,
    OperationSpec,
    ParameterSpec,
    PrimitiveSchema,
    ReferenceSchema,
    SchemaNode,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")

DEFAULT_VALUES: Dict[str, Any] = {
    "integer": 1,
    "number": 1.0,
    "string": "test",
    "boolean": True,
}

FORMAT_DEFAULTS: Dict[str, str] = {
    "date-time": "2024-01-01T00:00:00Z",
    "date": "2024-01-01",
    "uuid": "00000000-0000-4000-8000-000000000000",
    "email": "test@example.com",
    "uri": "https://example.com/test",
    "ipv4": "127.0.0.1",
    "ipv6": "::1",
}


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class NoSampleError(ValueError):
    """No value can be derived for a schema node."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass
class RequestOverrides:
    """Fixture data injected into one synthesized request.

    Attributes:
        path_params: Values for path template parameters
        query_params: Query parameters (added to, or replacing, synthesized ones)
        headers: Extra or replacement request headers
        body: Request body; ``UNSET`` means synthesize from the schema,
            ``None`` means send no body
        skip: Do not run the operation at all
    """

    path_params: Dict[str, Any] = field(default_factory=dict)
    query_params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = UNSET
    skip: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestOverrides":
        """Build overrides from a fixtures-file entry.

        Raises:
            ValueError: For unknown keys
        """
        known = {"path_params", "query_params", "headers", "body", "skip"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown override keys: {', '.join(sorted(unknown))}")
        return cls(
            path_params=dict(data.get("path_params") or {}),
            query_params=dict(data.get("query_params") or {}),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            body=data["body"] if "body" in data else UNSET,
            skip=bool(data.get("skip", False)),
        )


def _to_text(value: Any) -> str:
    """Serialize a parameter value the way form-style encoding expects."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_to_text(item) for item in value)
    return str(value)


class RequestSynthesizer:
    """Builds LiveRequests for operations.

    Attributes:
        base_url: API root that path templates are appended to
        default_headers: Headers sent with every request (overrides win)

    Example:
        >>> synthesizer = RequestSynthesizer("https://api.example.com")
        >>> request = synthesizer.synthesize(document.operation("GET /products/{id}"))
        >>> request.url
        'https://api.example.com/products/1'
    """

    def __init__(self, base_url: str, default_headers: Optional[Mapping[str, str]] = None):
        if not base_url or not base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be a valid HTTP/HTTPS URL (got: {base_url!r})")
        self.base_url = base_url.rstrip("/")
        self.default_headers = dict(default_headers or {})

    def synthesize(self, operation: OperationSpec, overrides: Optional[RequestOverrides] = None) -> LiveRequest:
        """Build a concrete request for ``operation``.

        Raises:
            UnsatisfiableParameterError: If a required parameter or body has no
                override and no derivable default
        """
        overrides = overrides or RequestOverrides()

        path = operation.path_template
        for parameter in operation.path_params:
            value = self._parameter_value(operation, parameter, overrides.path_params)
            path = path.replace("{" + parameter.name + "}", quote(_to_text(value), safe=""))
        for name in _PLACEHOLDER.findall(path):
            # template placeholders the document never declared as parameters
            if name not in overrides.path_params:
                raise UnsatisfiableParameterError(operation.name, name, "path placeholder is not a declared parameter")
            path = path.replace("{" + name + "}", quote(_to_text(overrides.path_params[name]), safe=""))

        query: Dict[str, Any] = {}
        for parameter in operation.query_params:
            if parameter.name in overrides.query_params or parameter.required:
                value = self._parameter_value(operation, parameter, overrides.query_params)
                query[parameter.name] = value
        for name, value in overrides.query_params.items():
            query[name] = value

        headers: Dict[str, str] = dict(self.default_headers)
        for parameter in operation.header_params:
            if parameter.name in overrides.headers or parameter.required:
                headers[parameter.name] = _to_text(
                    self._parameter_value(operation, parameter, overrides.headers)
                )
        headers.update(overrides.headers)

        body = overrides.body
        if body is UNSET:
            body = None
            if operation.request_body_schema is not None:
                try:
                    body = self.sample_value(operation.request_body_schema)
                except NoSampleError as e:
                    raise UnsatisfiableParameterError(operation.name, "body", e.reason) from None
                if body is None and operation.request_body_required:
                    raise UnsatisfiableParameterError(operation.name, "body", "required body samples to null")

        if body is not None and not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = "application/json"
        headers.setdefault("Accept", "application/json")

        url = self.base_url + path
        if query:
            encoded = {
                name: [_to_text(item) for item in value] if isinstance(value, (list, tuple)) else _to_text(value)
                for name, value in query.items()
            }
            url += "?" + urlencode(encoded, doseq=True)

        logger.debug(f"Synthesized {operation.method} {url} for {operation.name}")
        return LiveRequest(method=operation.method, url=url, headers=headers, body=body)

    def _parameter_value(
        self, operation: OperationSpec, parameter: ParameterSpec, supplied: Mapping[str, Any]
    ) -> Any:
        if parameter.name in supplied:
            return supplied[parameter.name]
        if parameter.example is not None:
            return parameter.example
        if parameter.schema is None:
            raise UnsatisfiableParameterError(operation.name, parameter.name, "no schema to derive a value from")
        try:
            return self.sample_value(parameter.schema)
        except NoSampleError as e:
            raise UnsatisfiableParameterError(operation.name, parameter.name, e.reason) from None

    def sample_value(self, schema: SchemaNode) -> Any:
        """Derive a deterministic value that satisfies ``schema``.

        Raises:
            NoSampleError: If no value can be derived
        """
        return self._sample(schema, frozenset())

    def _sample(self, schema: SchemaNode, active_refs: FrozenSet[str]) -> Any:
        if isinstance(schema, ReferenceSchema):
            if schema.pointer in active_refs:
                raise NoSampleError(f"reference cycle through {schema.pointer}")
            return self._sample(schema.resolve(), active_refs | {schema.pointer})

        for declared in (schema.example, schema.default):
            if declared is not None:
                return declared
        if schema.enum:
            # null members would leave a required body or parameter empty
            members = [member for member in schema.enum if member is not None] or [None]
            return members[0]

        if isinstance(schema, PrimitiveSchema):
            if schema.kind == "string" and schema.format in FORMAT_DEFAULTS:
                return FORMAT_DEFAULTS[schema.format]
            return DEFAULT_VALUES[schema.kind]

        if isinstance(schema, ObjectSchema):
            sample = {}
            for name, prop in schema.properties.items():
                try:
                    sample[name] = self._sample(prop, active_refs)
                except NoSampleError:
                    if name in schema.required:
                        raise
                    # Optional properties that cannot be sampled are left out
            for name in schema.required:
                if name not in sample:
                    raise NoSampleError(f"required property '{name}' is not declared")
            return sample

        if isinstance(schema, ArraySchema):
            try:
                return [self._sample(schema.items, active_refs)]
            except NoSampleError:
                return []

        if isinstance(schema, AllOfSchema):
            merged: Dict[str, Any] = {}
            for part in schema.parts:
                part_sample = self._sample(part, active_refs)
                if not isinstance(part_sample, dict):
                    return part_sample
                merged.update(part_sample)
            return merged

        if isinstance(schema, AnyOfSchema):
            for variant in schema.variants:
                try:
                    return self._sample(variant, active_refs)
                except NoSampleError:
                    continue
            raise NoSampleError("no variant can be sampled")

        if isinstance(schema, AnySchema):
            if schema.nullable:
                return None
            raise NoSampleError("schema declares no type, example or default")

        raise TypeError(f"Unsupported schema node: {type(schema).__name__}")
