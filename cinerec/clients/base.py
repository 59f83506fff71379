"""Shared async REST client for the upstream services."""

from typing import Any, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from cinerec.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
MAX_ERROR_BODY_CHARS = 500

T = TypeVar("T")


class UpstreamError(Exception):
    """Raised when an upstream service call fails.

    Covers transport failures, non-2xx responses and undecodable bodies. Calls are
    never retried here; the error always goes straight back to the caller.
    """

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code
        self.body = body


class RestClient:
    """Typed GET helper over ``httpx.AsyncClient``.

    Subclasses set ``service_name`` and ``api_prefix`` and describe each endpoint as
    a ``fetch`` call with the response type it decodes into.
    """

    service_name = "upstream"
    api_prefix = ""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Service root, e.g. ``http://auth:8080``
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}{self.api_prefix}",
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        path: str,
        response_type: type[T],
        params: dict[str, Any] | None = None,
    ) -> T:
        """GET ``path`` and decode the JSON body into ``response_type``.

        Args:
            path: Endpoint path relative to the service prefix
            response_type: Pydantic model or typing construct to validate against
            params: Query parameters

        Returns:
            The decoded response

        Raises:
            UpstreamError: On transport failure, non-2xx status or decode failure
        """
        client = await self._get_client()

        try:
            response = await client.get(path, params=params)
        except httpx.RequestError as e:
            raise UpstreamError(
                self.service_name, f"request to {path} failed: {e}"
            ) from e

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY_CHARS]
            raise UpstreamError(
                self.service_name,
                f"unexpected status code {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        try:
            return TypeAdapter(response_type).validate_json(response.content)
        except ValidationError as e:
            raise UpstreamError(
                self.service_name,
                f"failed to decode response from {path}: {e}",
                status_code=response.status_code,
            ) from e
