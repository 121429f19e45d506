"""HTTP transport for contract runs.

The runner only depends on the ``Transport`` protocol; ``HttpxTransport`` is
the production implementation on top of ``httpx.Client``.
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from .document import is_json_media_type
from .exceptions import TransportError
from .models import LiveRequest, LiveResponse

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can turn a LiveRequest into a LiveResponse."""

    def send(self, request: LiveRequest, timeout_ms: int) -> LiveResponse:
        """Send ``request`` within ``timeout_ms``.

        Raises:
            TransportError: On connection failures and timeouts
        """
        ...


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body: JSON value, text, or None when empty."""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if is_json_media_type(content_type):
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Response declared {content_type} but body is not valid JSON")
    return response.text


class HttpxTransport:
    """Synchronous httpx-backed transport.

    Safe to share between worker threads; httpx pools connections per client.

    Attributes:
        client: httpx.Client used for every request

    Example:
        >>> with HttpxTransport() as transport:
        ...     response = transport.send(LiveRequest("GET", "https://api.example.com/health"), 5000)
        >>> response.status_code
        200
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        verify: bool = True,
        retries: int = 0,
        follow_redirects: bool = False,
    ):
        """Initialize the transport.

        Args:
            client: Pre-configured client (tests inject a mock here)
            verify: Verify TLS certificates
            retries: Automatic retries for connection errors
            follow_redirects: Follow 3xx responses instead of validating them
        """
        if client is None:
            client = httpx.Client(
                transport=httpx.HTTPTransport(
                    limits=httpx.Limits(
                        max_connections=100,
                        max_keepalive_connections=20,
                        keepalive_expiry=5.0,
                    ),
                    retries=retries,
                    verify=verify,
                ),
                follow_redirects=follow_redirects,
            )
        self.client = client

    def send(self, request: LiveRequest, timeout_ms: int) -> LiveResponse:
        timeout = timeout_ms / 1000.0
        kwargs = {}
        if request.body is not None:
            kwargs["json"] = request.body

        logger.debug(f"Sending {request.method} {request.url} (timeout {timeout_ms}ms)")
        try:
            response = self.client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                timeout=httpx.Timeout(timeout),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{request.method} {request.url} timed out after {timeout_ms}ms") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"{request.method} {request.url} failed: {e}") from e
        except (TypeError, ValueError) as e:
            # body JSON encoding or non-ASCII header values
            raise TransportError(f"{request.method} {request.url} could not be encoded: {e}") from e

        logger.debug(f"Received {response.status_code} from {request.method} {request.url}")
        return LiveResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=decode_body(response),
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
