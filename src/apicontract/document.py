"""OpenAPI 3.x document loading and normalization.

``SchemaDocument.load`` parses JSON or YAML text into immutable
``OperationSpec`` records and a pointer-keyed ``SchemaRegistry``. Every
``$ref`` target is converted exactly once; references inside schemas stay as
``ReferenceSchema`` nodes so recursive schemas never expand.
"""

import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union

import yaml

from .exceptions import ParseError, UnresolvedReferenceError
from .models import (
    PRIMITIVE_KINDS,
    AllOfSchema,
    AnyOfSchema,
    AnySchema,
    ArraySchema,
    ObjectSchema,
    OperationSpec,
    ParameterSpec,
    PrimitiveSchema,
    ReferenceSchema,
    ResponseSpec,
    SchemaNode,
    SchemaRegistry,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
PARAMETER_LOCATIONS = ("path", "query", "header")
COMPOSITE_KEYWORDS = ("allOf", "anyOf", "oneOf")
# Keywords that make the rest of a composite node a constraint of its own
_STRUCTURAL_KEYWORDS = ("type", "properties", "required", "items", "additionalProperties")


def is_json_media_type(media_type: str) -> bool:
    """Check whether a media type carries JSON (application/json or +json)."""
    essence = media_type.split(";")[0].strip().lower()
    return essence == "application/json" or essence.endswith("+json")


def plain_value(value: Any) -> Any:
    """Convert YAML-native dates back to the ISO strings the document meant."""
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: plain_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [plain_value(item) for item in value]
    return value


class _DocumentBuilder:
    """Converts the raw mapping of one document into model objects."""

    def __init__(self, raw: Dict[str, Any]):
        self.raw = raw
        self.registry = SchemaRegistry()
        self._pending: List[str] = []
        self._queued: Set[str] = set()

    def lookup_pointer(self, pointer: str) -> Any:
        """Walk an internal JSON pointer through the raw document.

        Raises:
            ParseError: For external (non "#/") references
            UnresolvedReferenceError: If a pointer segment is missing
        """
        if not isinstance(pointer, str) or not pointer.startswith("#"):
            raise ParseError(f"Only internal references are supported: {pointer!r}")
        if pointer == "#":
            return self.raw
        if not pointer.startswith("#/"):
            raise ParseError(f"Malformed reference: {pointer!r}")

        target: Any = self.raw
        for segment in pointer[2:].split("/"):
            segment = segment.replace("~1", "/").replace("~0", "~")
            if isinstance(target, dict) and segment in target:
                target = target[segment]
            elif isinstance(target, list) and segment.isdigit() and int(segment) < len(target):
                target = target[int(segment)]
            else:
                raise UnresolvedReferenceError(pointer)
        return target

    def deref(self, obj: Any) -> Any:
        """Follow ``$ref`` chains for non-schema objects (parameters, responses...)."""
        seen: Set[str] = set()
        while isinstance(obj, dict) and "$ref" in obj:
            pointer = obj["$ref"]
            if pointer in seen:
                raise ParseError(f"Circular reference chain through {pointer}")
            seen.add(pointer)
            obj = self.lookup_pointer(pointer)
        return obj

    def build_schema(self, raw_schema: Any) -> SchemaNode:
        """Convert a raw schema mapping into a SchemaNode."""
        if not isinstance(raw_schema, dict):
            raise ParseError(f"Schema must be a mapping, got {type(raw_schema).__name__}")

        if "$ref" in raw_schema:
            pointer = raw_schema["$ref"]
            # Fails fast on absent targets; conversion is deferred to finish()
            self.lookup_pointer(pointer)
            if pointer not in self._queued:
                self._queued.add(pointer)
                self._pending.append(pointer)
            return ReferenceSchema(pointer, self.registry)

        declared_type = raw_schema.get("type")
        nullable = bool(raw_schema.get("nullable", False))
        if isinstance(declared_type, list):
            # OpenAPI 3.1 style: ["string", "null"]
            kinds = [kind for kind in declared_type if kind != "null"]
            nullable = nullable or len(kinds) < len(declared_type)
            declared_type = kinds[0] if len(kinds) == 1 else None

        common = {
            "nullable": nullable,
            "enum": tuple(plain_value(raw_schema["enum"])) if "enum" in raw_schema else None,
            "default": plain_value(raw_schema.get("default")),
            "example": plain_value(raw_schema.get("example")),
        }

        if any(key in raw_schema for key in COMPOSITE_KEYWORDS):
            return self.build_composite(raw_schema, common)

        if declared_type == "object" or (declared_type is None and "properties" in raw_schema):
            properties = {
                name: self.build_schema(prop)
                for name, prop in (raw_schema.get("properties") or {}).items()
            }
            additional: Union[bool, SchemaNode] = True
            raw_additional = raw_schema.get("additionalProperties", True)
            if isinstance(raw_additional, bool):
                additional = raw_additional
            elif isinstance(raw_additional, dict):
                additional = self.build_schema(raw_additional)
            return ObjectSchema(
                properties=properties,
                required=tuple(raw_schema.get("required") or ()),
                additional_properties=additional,
                **common,
            )

        if declared_type == "array" or (declared_type is None and "items" in raw_schema):
            items = self.build_schema(raw_schema["items"]) if "items" in raw_schema else AnySchema()
            return ArraySchema(items=items, **common)

        if declared_type in PRIMITIVE_KINDS:
            return PrimitiveSchema(kind=declared_type, format=raw_schema.get("format"), **common)

        if declared_type == "null":
            common["nullable"] = True
            common["enum"] = (None,)
            return AnySchema(**common)

        if declared_type is None:
            return AnySchema(**common)

        raise ParseError(f"Unknown schema type: {declared_type!r}")

    def build_composite(self, raw_schema: Dict[str, Any], common: Dict[str, Any]) -> SchemaNode:
        """Build allOf/anyOf/oneOf nodes, keeping sibling keywords as an extra allOf part.

        ``{allOf: [Base], properties: {price: ...}}`` must check ``price`` too,
        and ``{anyOf: [A, B], required: [id]}`` means (A or B) and the siblings.
        """
        parts = [self.build_schema(part) for part in raw_schema.get("allOf") or ()]

        rest = {
            key: value
            for key, value in raw_schema.items()
            if key not in COMPOSITE_KEYWORDS and key not in ("nullable", "enum", "default", "example")
        }
        if any(key in rest for key in _STRUCTURAL_KEYWORDS):
            parts.append(self.build_schema(rest))

        if "anyOf" in raw_schema or "oneOf" in raw_schema:
            raw_variants = raw_schema.get("anyOf") or raw_schema.get("oneOf") or []
            variants = tuple(self.build_schema(variant) for variant in raw_variants)
            if not parts:
                return AnyOfSchema(variants=variants, **common)
            parts.append(AnyOfSchema(variants=variants))

        return AllOfSchema(parts=tuple(parts), **common)

    def finish(self) -> None:
        """Convert every referenced schema into the registry, once each."""
        while self._pending:
            pointer = self._pending.pop()
            self.registry.register(pointer, self.build_schema(self.lookup_pointer(pointer)))

    def build_parameters(self, raw_parameters: Any, where: str) -> Dict[Tuple[str, str], ParameterSpec]:
        if not isinstance(raw_parameters, list):
            raise ParseError(f"'parameters' must be a list at {where}")

        parameters: Dict[Tuple[str, str], ParameterSpec] = {}
        for raw_parameter in raw_parameters:
            raw_parameter = self.deref(raw_parameter)
            if not isinstance(raw_parameter, dict) or "name" not in raw_parameter or "in" not in raw_parameter:
                raise ParseError(f"Parameter needs 'name' and 'in' at {where}")

            location = raw_parameter["in"]
            if location not in PARAMETER_LOCATIONS:
                logger.debug(f"Ignoring {location} parameter '{raw_parameter['name']}' at {where}")
                continue

            schema = None
            if "schema" in raw_parameter:
                schema = self.build_schema(raw_parameter["schema"])
            elif isinstance(raw_parameter.get("content"), dict) and raw_parameter["content"]:
                media = next(iter(raw_parameter["content"].values())) or {}
                if "schema" in media:
                    schema = self.build_schema(media["schema"])

            example = raw_parameter.get("example")
            if example is None and isinstance(raw_parameter.get("examples"), dict):
                for raw_example in raw_parameter["examples"].values():
                    raw_example = self.deref(raw_example)
                    if isinstance(raw_example, dict) and "value" in raw_example:
                        example = raw_example["value"]
                        break

            parameters[(raw_parameter["name"], location)] = ParameterSpec(
                name=raw_parameter["name"],
                location=location,
                # Path parameters are always required
                required=location == "path" or bool(raw_parameter.get("required", False)),
                schema=schema,
                example=plain_value(example),
            )
        return parameters

    def build_request_body(self, raw_body: Any, where: str) -> Tuple[Optional[SchemaNode], bool]:
        raw_body = self.deref(raw_body)
        if not isinstance(raw_body, dict):
            raise ParseError(f"'requestBody' must be a mapping at {where}")
        for media_type, media in (raw_body.get("content") or {}).items():
            if is_json_media_type(media_type) and isinstance(media, dict) and "schema" in media:
                return self.build_schema(media["schema"]), bool(raw_body.get("required", False))
        return None, bool(raw_body.get("required", False))

    def build_responses(self, raw_responses: Any, where: str) -> Dict[int, ResponseSpec]:
        if not isinstance(raw_responses, dict):
            raise ParseError(f"'responses' must be a mapping at {where}")

        responses: Dict[int, ResponseSpec] = {}
        for key, raw_response in raw_responses.items():
            try:
                status_code = int(str(key))
            except ValueError:
                logger.debug(f"Ignoring non-exact response key '{key}' at {where}")
                continue

            raw_response = self.deref(raw_response)
            if not isinstance(raw_response, dict):
                raise ParseError(f"Response {key} must be a mapping at {where}")

            required_headers = []
            for header_name, raw_header in (raw_response.get("headers") or {}).items():
                raw_header = self.deref(raw_header)
                # Content-Type is described by 'content', never as a header
                if header_name.lower() == "content-type":
                    continue
                if isinstance(raw_header, dict) and raw_header.get("required", False):
                    required_headers.append(header_name)

            body_schema = None
            content_type = None
            content = raw_response.get("content") or {}
            for media_type, media in content.items():
                if is_json_media_type(media_type):
                    content_type = media_type
                    if isinstance(media, dict) and "schema" in media:
                        body_schema = self.build_schema(media["schema"])
                    break
            if content_type is None and content:
                content_type = next(iter(content))

            responses[status_code] = ResponseSpec(
                status_code=status_code,
                required_headers=tuple(required_headers),
                body_schema=body_schema,
                content_type=content_type,
            )
        return responses

    def build_operations(self) -> List[OperationSpec]:
        paths = self.raw.get("paths")
        if not isinstance(paths, dict):
            raise ParseError("Document has no 'paths' mapping")

        operations = []
        for path_template, path_item in paths.items():
            path_item = self.deref(path_item)
            if not isinstance(path_item, dict):
                raise ParseError(f"Path item must be a mapping at {path_template}")

            shared = self.build_parameters(path_item.get("parameters") or [], path_template)

            for method, raw_operation in path_item.items():
                if method.lower() not in HTTP_METHODS:
                    continue
                where = f"{method.upper()} {path_template}"
                if not isinstance(raw_operation, dict):
                    raise ParseError(f"Operation must be a mapping at {where}")

                parameters = dict(shared)
                parameters.update(self.build_parameters(raw_operation.get("parameters") or [], where))

                body_schema, body_required = None, False
                if "requestBody" in raw_operation:
                    body_schema, body_required = self.build_request_body(raw_operation["requestBody"], where)

                operations.append(
                    OperationSpec(
                        method=method.upper(),
                        path_template=path_template,
                        path_params=tuple(p for p in parameters.values() if p.location == "path"),
                        query_params=tuple(p for p in parameters.values() if p.location == "query"),
                        header_params=tuple(p for p in parameters.values() if p.location == "header"),
                        request_body_schema=body_schema,
                        request_body_required=body_required,
                        responses=self.build_responses(raw_operation.get("responses") or {}, where),
                        operation_id=raw_operation.get("operationId"),
                        summary=raw_operation.get("summary"),
                        tags=tuple(raw_operation.get("tags") or ()),
                    )
                )
        return operations


class SchemaDocument:
    """Parsed, normalized, immutable OpenAPI 3.x document.

    Attributes:
        title: info.title
        version: info.version
        openapi_version: The document's ``openapi`` field
        servers: Server URLs in declaration order
        registry: Pointer-keyed schema registry

    Example:
        >>> document = SchemaDocument.from_file("openapi.yaml")
        >>> for operation in document.operations():
        ...     print(operation.name)
        GET /products
        POST /products
    """

    def __init__(
        self,
        operations: List[OperationSpec],
        registry: SchemaRegistry,
        title: str = "",
        version: str = "",
        openapi_version: str = "",
        servers: Tuple[str, ...] = (),
    ):
        self._operations = tuple(operations)
        self.registry = registry
        self.title = title
        self.version = version
        self.openapi_version = openapi_version
        self.servers = servers

    @classmethod
    def load(cls, raw_text: str) -> "SchemaDocument":
        """Parse JSON or YAML text into a SchemaDocument.

        Raises:
            ParseError: If the text is malformed or not an OpenAPI 3.x document
            UnresolvedReferenceError: If a ``$ref`` target is absent
        """
        try:
            raw = yaml.safe_load(raw_text)
        except yaml.YAMLError as e:
            raise ParseError(f"Malformed document: {e}") from e

        if not isinstance(raw, dict):
            raise ParseError("Document root must be a mapping")

        openapi_version = str(raw.get("openapi", ""))
        if not openapi_version.startswith("3."):
            raise ParseError(f"Unsupported OpenAPI version: {openapi_version or 'missing'}")

        builder = _DocumentBuilder(raw)
        operations = builder.build_operations()
        builder.finish()

        info = raw.get("info") or {}
        servers = tuple(
            server["url"]
            for server in (raw.get("servers") or [])
            if isinstance(server, dict) and isinstance(server.get("url"), str)
        )
        document = cls(
            operations=operations,
            registry=builder.registry,
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
            openapi_version=openapi_version,
            servers=servers,
        )
        logger.info(
            f"Loaded OpenAPI {openapi_version} document '{document.title}': "
            f"{len(operations)} operations, {len(builder.registry)} referenced schemas"
        )
        return document

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SchemaDocument":
        """Read and load a document from disk."""
        logger.debug(f"Reading OpenAPI document from {path}")
        return cls.load(Path(path).read_text(encoding="utf-8"))

    def operations(self) -> Iterator[OperationSpec]:
        """Yield every operation in declaration order (fresh iterator per call)."""
        yield from self._operations

    def operation(self, key: str) -> OperationSpec:
        """Find an operation by name ("GET /path") or operationId.

        Raises:
            KeyError: If no operation matches
        """
        for operation in self._operations:
            if key in (operation.name, operation.operation_id):
                return operation
        raise KeyError(key)

    def resolve(self, pointer: str) -> SchemaNode:
        return self.registry.lookup(pointer)

    @property
    def base_url(self) -> Optional[str]:
        """First absolute server URL declared by the document, if any."""
        for url in self.servers:
            if url.startswith(("http://", "https://")):
                return url
        return None

    def __len__(self) -> int:
        return len(self._operations)

    def __repr__(self) -> str:
        return f"SchemaDocument(title={self.title!r}, operations={len(self._operations)})"
