"""Unit tests for RequestSynthesizer.

Test Coverage:
- URL construction from path templates and query parameters
- Value precedence (override, example, default, enum, format, kind table)
- Body synthesis and Content-Type handling
- Unsatisfiable required values
- Synthesized values conform to their own schemas
"""

import pytest

from apicontract.document import SchemaDocument
from apicontract.exceptions import UnsatisfiableParameterError
from apicontract.models import (
    AnyOfSchema,
    AnySchema,
    ArraySchema,
    ObjectSchema,
    OperationSpec,
    ParameterSpec,
    PrimitiveSchema,
    ReferenceSchema,
)
from apicontract.synthesizer import (
    UNSET,
    NoSampleError,
    RequestOverrides,
    RequestSynthesizer,
)
from apicontract.validator import SchemaValidator

REQUIRED_CYCLE_DOCUMENT = """
openapi: 3.0.3
info: {title: Chains, version: "1"}
paths:
  /chains:
    post:
      requestBody:
        required: true
        content:
          application/json:
            schema:
              $ref: '#/components/schemas/Link'
      responses:
        "201":
          description: Created
components:
  schemas:
    Link:
      type: object
      required: [next]
      properties:
        next:
          $ref: '#/components/schemas/Link'
"""


@pytest.fixture
def synthesizer(base_url) -> RequestSynthesizer:
    return RequestSynthesizer(base_url)


class TestUrls:
    def test_path_parameter_from_kind_table(self, synthesizer, products_document):
        request = synthesizer.synthesize(products_document.operation("getProduct"))

        assert request.method == "GET"
        assert request.url == "https://api.example.com/v1/products/1"
        assert request.body is None

    def test_path_parameter_override_is_quoted(self, synthesizer, products_document):
        overrides = RequestOverrides(path_params={"id": "a b/c"})

        request = synthesizer.synthesize(products_document.operation("getProduct"), overrides)

        assert request.url == "https://api.example.com/v1/products/a%20b%2Fc"

    def test_parameter_example_is_used(self, synthesizer, products_document):
        request = synthesizer.synthesize(products_document.operation("getCategoryTree"))

        assert request.url == "https://api.example.com/v1/categories/power-tools/tree"

    def test_optional_query_parameter_is_omitted(self, synthesizer, products_document):
        request = synthesizer.synthesize(products_document.operation("listProducts"))

        assert request.url == "https://api.example.com/v1/products"

    def test_query_overrides(self, synthesizer, products_document):
        overrides = RequestOverrides(query_params={"limit": 5, "tag": ["a", "b"], "active": True})

        request = synthesizer.synthesize(products_document.operation("listProducts"), overrides)

        assert request.url == "https://api.example.com/v1/products?limit=5&tag=a&tag=b&active=true"

    def test_required_query_parameter_uses_default(self, synthesizer):
        operation = OperationSpec(
            method="GET",
            path_template="/search",
            query_params=(
                ParameterSpec("page", "query", required=True, schema=PrimitiveSchema(kind="integer", default=3)),
            ),
        )

        assert synthesizer.synthesize(operation).url == "https://api.example.com/v1/search?page=3"

    def test_trailing_slash_on_base_url(self, products_document):
        request = RequestSynthesizer("https://api.example.com/v1/").synthesize(
            products_document.operation("listProducts")
        )

        assert request.url == "https://api.example.com/v1/products"

    @pytest.mark.parametrize("base_url", ["", "api.example.com", "ftp://api.example.com"])
    def test_invalid_base_url(self, base_url):
        with pytest.raises(ValueError, match="base_url"):
            RequestSynthesizer(base_url)


class TestHeaders:
    def test_get_has_accept_but_no_content_type(self, synthesizer, products_document):
        request = synthesizer.synthesize(products_document.operation("listProducts"))

        assert request.headers == {"Accept": "application/json"}

    def test_default_and_override_headers(self, products_document):
        synthesizer = RequestSynthesizer(
            "https://api.example.com/v1", {"Authorization": "Bearer abc", "X-Env": "ci"}
        )
        overrides = RequestOverrides(headers={"X-Env": "staging"})

        request = synthesizer.synthesize(products_document.operation("getProduct"), overrides)

        assert request.headers["Authorization"] == "Bearer abc"
        assert request.headers["X-Env"] == "staging"

    def test_required_header_parameter(self, synthesizer):
        operation = OperationSpec(
            method="GET",
            path_template="/me",
            header_params=(
                ParameterSpec("X-Tenant", "header", required=True, schema=PrimitiveSchema(kind="string")),
                ParameterSpec("X-Debug", "header", schema=PrimitiveSchema(kind="boolean")),
            ),
        )

        request = synthesizer.synthesize(operation)

        assert request.headers["X-Tenant"] == "test"
        assert "X-Debug" not in request.headers


class TestBody:
    def test_body_synthesized_from_schema(self, synthesizer, products_document):
        request = synthesizer.synthesize(products_document.operation("createProduct"))

        assert request.body == {"name": "test", "price": 1.0, "tags": ["test"]}
        assert request.headers["Content-Type"] == "application/json"

    def test_body_override(self, synthesizer, products_document):
        body = {"name": "Hammer", "price": 12.0}

        request = synthesizer.synthesize(products_document.operation("createProduct"), RequestOverrides(body=body))

        assert request.body == body

    def test_explicit_none_body_sends_nothing(self, synthesizer, products_document):
        request = synthesizer.synthesize(products_document.operation("createProduct"), RequestOverrides(body=None))

        assert request.body is None
        assert "Content-Type" not in request.headers

    def test_enum_body_skips_null_member(self, synthesizer):
        operation = OperationSpec(
            method="PUT",
            path_template="/mode",
            request_body_schema=PrimitiveSchema(kind="string", nullable=True, enum=(None, "eco", "boost")),
            request_body_required=True,
        )

        request = synthesizer.synthesize(operation)

        assert request.body == "eco"
        assert request.headers["Content-Type"] == "application/json"

    def test_explicit_content_type_is_kept(self, synthesizer, products_document):
        overrides = RequestOverrides(headers={"content-type": "application/merge-patch+json"})

        request = synthesizer.synthesize(products_document.operation("createProduct"), overrides)

        assert request.headers["content-type"] == "application/merge-patch+json"
        assert "Content-Type" not in request.headers


class TestUnsatisfiable:
    def test_untyped_required_parameter(self, synthesizer):
        operation = OperationSpec(
            method="GET",
            path_template="/files/{name}",
            path_params=(ParameterSpec("name", "path", required=True, schema=AnySchema()),),
        )

        with pytest.raises(UnsatisfiableParameterError) as exc_info:
            synthesizer.synthesize(operation)

        assert exc_info.value.operation == "GET /files/{name}"
        assert exc_info.value.parameter == "name"

    def test_parameter_without_schema(self, synthesizer):
        operation = OperationSpec(
            method="GET",
            path_template="/files/{name}",
            path_params=(ParameterSpec("name", "path", required=True),),
        )

        with pytest.raises(UnsatisfiableParameterError, match="no schema"):
            synthesizer.synthesize(operation)

    def test_override_satisfies_untyped_parameter(self, synthesizer):
        operation = OperationSpec(
            method="GET",
            path_template="/files/{name}",
            path_params=(ParameterSpec("name", "path", required=True, schema=AnySchema()),),
        )

        request = synthesizer.synthesize(operation, RequestOverrides(path_params={"name": "report.pdf"}))

        assert request.url.endswith("/files/report.pdf")

    def test_required_cyclic_property(self, synthesizer):
        operation = SchemaDocument.load(REQUIRED_CYCLE_DOCUMENT).operation("POST /chains")

        with pytest.raises(UnsatisfiableParameterError) as exc_info:
            synthesizer.synthesize(operation)

        assert exc_info.value.parameter == "body"
        assert "cycle" in exc_info.value.reason

    def test_undeclared_path_placeholder(self, synthesizer):
        operation = OperationSpec(method="GET", path_template="/items/{id}")

        with pytest.raises(UnsatisfiableParameterError) as exc_info:
            synthesizer.synthesize(operation)

        assert exc_info.value.parameter == "id"

    def test_undeclared_path_placeholder_from_override(self, synthesizer):
        operation = OperationSpec(method="GET", path_template="/items/{id}/parts/{part}")
        overrides = RequestOverrides(path_params={"id": 42, "part": "a/b"})

        request = synthesizer.synthesize(operation, overrides)

        assert request.url == "https://api.example.com/v1/items/42/parts/a%2Fb"

    def test_required_body_that_samples_to_null(self, synthesizer):
        operation = OperationSpec(
            method="POST",
            path_template="/flags",
            request_body_schema=AnySchema(nullable=True),
            request_body_required=True,
        )

        with pytest.raises(UnsatisfiableParameterError, match="null"):
            synthesizer.synthesize(operation)


class TestSampleValues:
    @pytest.mark.parametrize(
        "schema, expected",
        [
            (PrimitiveSchema(kind="integer"), 1),
            (PrimitiveSchema(kind="number"), 1.0),
            (PrimitiveSchema(kind="string"), "test"),
            (PrimitiveSchema(kind="boolean"), True),
            (PrimitiveSchema(kind="string", format="uuid"), "00000000-0000-4000-8000-000000000000"),
            (PrimitiveSchema(kind="string", format="date-time"), "2024-01-01T00:00:00Z"),
            (PrimitiveSchema(kind="string", enum=("red", "green")), "red"),
            (PrimitiveSchema(kind="string", nullable=True, enum=(None, "red")), "red"),
            (PrimitiveSchema(kind="integer", default=10, enum=(5, 10)), 10),
            (PrimitiveSchema(kind="string", example="sku-1", default="x"), "sku-1"),
            (AnySchema(nullable=True), None),
            (AnyOfSchema(variants=(AnySchema(), PrimitiveSchema(kind="integer"))), 1),
        ],
    )
    def test_precedence(self, synthesizer, schema, expected):
        assert synthesizer.sample_value(schema) == expected

    def test_array_of_unsampleable_items_is_empty(self, synthesizer):
        assert synthesizer.sample_value(ArraySchema(items=AnySchema())) == []

    def test_optional_unsampleable_property_is_left_out(self, synthesizer):
        schema = ObjectSchema(properties={"id": PrimitiveSchema(kind="integer"), "meta": AnySchema()})

        assert synthesizer.sample_value(schema) == {"id": 1}

    def test_required_undeclared_property(self, synthesizer):
        with pytest.raises(NoSampleError, match="not declared"):
            synthesizer.sample_value(ObjectSchema(required=("id",)))

    def test_recursive_schema_terminates(self, synthesizer, products_document):
        category = ReferenceSchema("#/components/schemas/Category", products_document.registry)

        assert synthesizer.sample_value(category) == {"name": "test", "children": []}

    def test_resolved_recursive_schema_unrolls_once(self, synthesizer, products_document):
        category = products_document.resolve("#/components/schemas/Category")

        assert synthesizer.sample_value(category) == {
            "name": "test",
            "children": [{"name": "test", "children": []}],
        }

    def test_samples_conform_to_their_schemas(self, synthesizer, products_document):
        validator = SchemaValidator(strict=True)

        for pointer in ("NewProduct", "Product", "Category"):
            schema = products_document.resolve(f"#/components/schemas/{pointer}")
            sample = synthesizer.sample_value(schema)
            assert validator.validate(sample, schema) == [], pointer


class TestRequestOverrides:
    def test_from_dict(self):
        overrides = RequestOverrides.from_dict(
            {"path_params": {"id": 42}, "headers": {"X-Count": 3}, "body": None, "skip": True}
        )

        assert overrides.path_params == {"id": 42}
        assert overrides.headers == {"X-Count": "3"}
        assert overrides.body is None
        assert overrides.skip is True

    def test_missing_body_means_synthesize(self):
        assert RequestOverrides.from_dict({}).body is UNSET

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="query"):
            RequestOverrides.from_dict({"query": {"limit": 1}})
