"""Unit tests for fixtures and the run context."""

import pytest

from apicontract.fixtures import Fixtures, RunContext, load_fixtures
from apicontract.models import LiveResponse
from apicontract.synthesizer import UNSET, RequestOverrides


@pytest.fixture
def create_product(products_document):
    return products_document.operation("createProduct")


class TestRunContext:
    def test_remember_by_name_and_operation_id(self, create_product):
        context = RunContext()
        response = LiveResponse(201, {}, {"id": 42})

        context.remember(create_product, response)

        assert context.response("POST /products") is response
        assert context.body("createProduct") == {"id": 42}

    def test_unknown_operation(self):
        context = RunContext()

        assert context.response("createProduct") is None
        with pytest.raises(KeyError):
            context.body("createProduct")


class TestFixtures:
    def test_lookup_by_name(self, create_product):
        overrides = RequestOverrides(body={"name": "Lamp", "price": 1})

        fixtures = Fixtures({"POST /products": overrides})

        assert fixtures.for_operation(create_product, RunContext()) is overrides

    def test_operation_id_wins_over_name(self, create_product):
        by_id = RequestOverrides(skip=True)
        fixtures = Fixtures({"POST /products": RequestOverrides(), "createProduct": by_id})

        assert fixtures.for_operation(create_product, RunContext()) is by_id

    def test_no_entry(self, create_product):
        assert Fixtures().for_operation(create_product, RunContext()) is None

    def test_callable_entry_receives_context(self, products_document, create_product):
        context = RunContext()
        context.remember(create_product, LiveResponse(201, {}, {"id": 9}))
        fixtures = Fixtures()
        fixtures.add("getProduct", lambda ctx: RequestOverrides(path_params={"id": ctx.body("createProduct")["id"]}))

        overrides = fixtures.for_operation(products_document.operation("getProduct"), context)

        assert overrides.path_params == {"id": 9}
        assert "getProduct" in fixtures
        assert len(fixtures) == 1

    def test_callable_with_wrong_return_type(self, create_product):
        fixtures = Fixtures({"createProduct": lambda ctx: {"body": {}}})

        with pytest.raises(TypeError, match="expected RequestOverrides"):
            fixtures.for_operation(create_product, RunContext())


class TestLoadFixtures:
    def test_load(self, tmp_path):
        path = tmp_path / "fixtures.yaml"
        path.write_text(
            """
createProduct:
  body: {name: Lamp, price: 19.99}
"GET /products/{id}":
  path_params: {id: 42}
"DELETE /products/{id}":
  skip: true
""",
            encoding="utf-8",
        )

        fixtures = load_fixtures(path)

        assert len(fixtures) == 3
        assert "GET /products/{id}" in fixtures

    def test_loaded_entries(self, tmp_path, products_document):
        path = tmp_path / "fixtures.json"
        path.write_text('{"getProduct": {"path_params": {"id": 42}}, "listProducts": {}}', encoding="utf-8")

        fixtures = load_fixtures(path)

        overrides = fixtures.for_operation(products_document.operation("getProduct"), RunContext())
        assert overrides.path_params == {"id": 42}
        assert overrides.body is UNSET
        assert fixtures.for_operation(products_document.operation("listProducts"), RunContext()) == RequestOverrides()

    def test_yaml_dates_become_iso_strings(self, tmp_path, products_document):
        path = tmp_path / "fixtures.yaml"
        path.write_text("createProduct:\n  body: {name: Lamp, released: 2024-01-01}\n", encoding="utf-8")

        overrides = load_fixtures(path).for_operation(products_document.operation("createProduct"), RunContext())

        assert overrides.body == {"name": "Lamp", "released": "2024-01-01"}

    @pytest.mark.parametrize(
        "content, message",
        [
            ("createProduct: [unclosed", "Malformed"),
            ("- a\n- b\n", "mapping of operation keys"),
            ("createProduct: 3\n", "must be a mapping"),
            ("createProduct:\n  bodyy: {}\n", "Unknown override keys"),
        ],
    )
    def test_malformed(self, tmp_path, content, message):
        path = tmp_path / "fixtures.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ValueError, match=message):
            load_fixtures(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_fixtures(tmp_path / "absent.yaml")
