"""Shared fixtures for apicontract tests."""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Tuple, Union
from urllib.parse import urlsplit

import pytest

from apicontract.document import SchemaDocument
from apicontract.models import LiveRequest, LiveResponse

FIXTURES_DIR = Path(__file__).parent / "fixtures"
BASE_URL = "https://api.example.com/v1"

VALID_PRODUCT = {
    "id": 7,
    "name": "Cordless drill",
    "price": 89.5,
    "tags": ["tools"],
    "createdAt": "2024-03-01T09:30:00Z",
    "status": "active",
}

Reply = Union[LiveResponse, BaseException, Callable[[LiveRequest], LiveResponse]]


class FakeTransport:
    """In-memory transport answering by (METHOD, path) without touching the network.

    Replies can be a LiveResponse, an exception to raise, or a callable that
    receives the request. Unknown routes answer 404.
    """

    def __init__(self, routes: Dict[Tuple[str, str], Reply]):
        self.routes = routes
        self.requests: List[LiveRequest] = []
        self._lock = threading.Lock()

    def send(self, request: LiveRequest, timeout_ms: int) -> LiveResponse:
        with self._lock:
            self.requests.append(request)
        reply = self.routes.get((request.method, urlsplit(request.url).path))
        if reply is None:
            return LiveResponse(404, {}, None)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(request)
        return reply

    def urls(self) -> List[str]:
        return [request.url for request in self.requests]


@pytest.fixture
def valid_product() -> dict:
    """A Product body that satisfies the sample document."""
    return dict(VALID_PRODUCT, tags=list(VALID_PRODUCT["tags"]))


@pytest.fixture
def products_text() -> str:
    """Raw YAML of the sample Products API document."""
    return (FIXTURES_DIR / "products.yaml").read_text(encoding="utf-8")


@pytest.fixture
def products_document(products_text) -> SchemaDocument:
    return SchemaDocument.load(products_text)


@pytest.fixture
def healthy_routes() -> Dict[Tuple[str, str], Reply]:
    """Routes under which every operation of the sample document passes."""
    return {
        ("GET", "/v1/products"): LiveResponse(200, {"x-total-count": "1"}, [VALID_PRODUCT]),
        ("POST", "/v1/products"): LiveResponse(201, {"content-type": "application/json"}, VALID_PRODUCT),
        ("GET", "/v1/products/1"): LiveResponse(200, {}, VALID_PRODUCT),
        ("DELETE", "/v1/products/1"): LiveResponse(204, {}, None),
        ("GET", "/v1/categories/power-tools/tree"): LiveResponse(
            200, {}, {"name": "Power tools", "children": [{"name": "Drills", "children": []}]}
        ),
    }


@pytest.fixture
def transport_factory() -> Callable[[Dict[Tuple[str, str], Reply]], FakeTransport]:
    return FakeTransport


@pytest.fixture
def healthy_transport(healthy_routes) -> FakeTransport:
    return FakeTransport(healthy_routes)


@pytest.fixture
def base_url() -> str:
    return BASE_URL
