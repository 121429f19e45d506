"""Exception classes for the contract-test engine."""


class ContractError(Exception):
    """Base exception for all contract-test engine errors."""

    pass


class ParseError(ContractError):
    """Document text is malformed or is not an OpenAPI 3.x document.

    Fatal: raised while loading, before any request is sent.
    """

    pass


class UnresolvedReferenceError(ContractError):
    """A ``$ref`` pointer has no target in the document.

    Attributes:
        pointer: The pointer string that could not be resolved
    """

    def __init__(self, pointer: str):
        """Initialize unresolved reference error.

        Args:
            pointer: The ``$ref`` value that has no target
        """
        self.pointer = pointer
        super().__init__(f"Unresolved reference: {pointer}")


class UnsatisfiableParameterError(ContractError):
    """A required request value has no override and no derivable default.

    Marks a single operation as errored; the rest of the run continues.

    Attributes:
        operation: Operation name (e.g. "GET /products/{id}")
        parameter: Parameter name, or "body" for request bodies
    """

    def __init__(self, operation: str, parameter: str, reason: str = "no override or default"):
        self.operation = operation
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Cannot satisfy '{parameter}' for {operation}: {reason}")


class TransportError(ContractError):
    """The HTTP transport failed to produce a response (refused, timeout, ...)."""

    pass


class CycleError(ContractError):
    """A reference cycle was re-entered without consuming a concrete value.

    Attributes:
        pointer: The reference pointer that closed the cycle
        path: Field path at which the cycle was detected
    """

    def __init__(self, pointer: str, path: str):
        self.pointer = pointer
        self.path = path
        super().__init__(f"Reference cycle through {pointer} at {path}")
