"""Fixture data for synthesized requests.

Fixtures replace hook-style global state: they are handed to the runner
explicitly and live for a single run. An entry is either a static
``RequestOverrides`` or a callable that builds one from the ``RunContext``,
which lets a later operation reuse data returned by an earlier one::

    fixtures = Fixtures({
        "createProduct": RequestOverrides(body={"name": "Lamp", "price": 19.99}),
        "GET /products/{id}": lambda ctx: RequestOverrides(
            path_params={"id": ctx.body("createProduct")["id"]}
        ),
    })
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

import yaml

from .document import plain_value
from .models import LiveResponse, OperationSpec
from .synthesizer import RequestOverrides

logger = logging.getLogger(__name__)


class RunContext:
    """Responses received so far in the current run, keyed by operation."""

    def __init__(self) -> None:
        self._responses: Dict[str, LiveResponse] = {}
        self._lock = threading.Lock()

    def remember(self, operation: OperationSpec, response: LiveResponse) -> None:
        with self._lock:
            self._responses[operation.name] = response
            if operation.operation_id:
                self._responses[operation.operation_id] = response

    def response(self, key: str) -> Optional[LiveResponse]:
        """Response recorded for an operation name or operationId, if any."""
        with self._lock:
            return self._responses.get(key)

    def body(self, key: str) -> Any:
        """Body of a recorded response.

        Raises:
            KeyError: If the operation has not produced a response in this run
        """
        response = self.response(key)
        if response is None:
            raise KeyError(f"No response recorded for {key}")
        return response.body


FixtureEntry = Union[RequestOverrides, Callable[[RunContext], Optional[RequestOverrides]]]


class Fixtures:
    """Per-operation overrides, keyed by operation name or operationId."""

    def __init__(self, entries: Optional[Mapping[str, FixtureEntry]] = None):
        self._entries: Dict[str, FixtureEntry] = dict(entries or {})

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, key: str, entry: FixtureEntry) -> None:
        self._entries[key] = entry

    def for_operation(self, operation: OperationSpec, context: RunContext) -> Optional[RequestOverrides]:
        """Resolve the overrides for one operation.

        operationId keys take precedence over "METHOD /path" keys. Callable
        entries are invoked with the run context; whatever they raise
        propagates to the caller.
        """
        entry = None
        if operation.operation_id and operation.operation_id in self._entries:
            entry = self._entries[operation.operation_id]
        elif operation.name in self._entries:
            entry = self._entries[operation.name]

        if entry is None:
            return None
        if isinstance(entry, RequestOverrides):
            return entry

        overrides = entry(context)
        if overrides is not None and not isinstance(overrides, RequestOverrides):
            raise TypeError(
                f"Fixture for {operation.name} returned {type(overrides).__name__}, expected RequestOverrides"
            )
        return overrides


def load_fixtures(path: Union[str, Path]) -> Fixtures:
    """Load static fixtures from a YAML or JSON file.

    The file maps operation keys to override entries::

        createProduct:
          body: {name: Lamp, price: 19.99}
        "GET /products/{id}":
          path_params: {id: 42}
        "DELETE /products/{id}":
          skip: true

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is malformed
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = plain_value(yaml.safe_load(text)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Malformed fixtures file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Fixtures file {path} must contain a mapping of operation keys")

    fixtures = Fixtures()
    for key, entry in data.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Fixture entry for {key!r} must be a mapping")
        fixtures.add(str(key), RequestOverrides.from_dict(entry))

    logger.info(f"Loaded {len(fixtures)} fixture entries from {path}")
    return fixtures
