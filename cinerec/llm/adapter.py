"""LLM adapter for OpenAI-compatible chat-completion APIs (OpenRouter by default)."""

import asyncio

import httpx

from cinerec.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_TEMPERATURE = 0.7
MAX_RETRIES = 3
BASE_BACKOFF = 1.0


class LLMError(Exception):
    """Base exception for LLM API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMRateLimitError(LLMError):
    """Rate limit exceeded."""

    def __init__(self, retry_after: int | None = None):
        super().__init__("Rate limit exceeded", status_code=429)
        self.retry_after = retry_after


class LLMAdapter:
    """Adapter for chat-completion calls using httpx.

    Rate limits, 5xx responses and transport errors are retried with exponential
    backoff; any other error is raised to the caller immediately.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        max_tokens: int = 500,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("LLM adapter client closed")

    async def _call(self, system_prompt: str, user_prompt: str) -> str:
        client = await self._get_client()
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        response = await client.post("/chat/completions", json=payload)

        if response.is_success:
            try:
                data = response.json()
            except ValueError as e:
                raise LLMError(
                    f"Completion response is not valid JSON: {e}",
                    status_code=response.status_code,
                ) from e
            if not isinstance(data, dict):
                raise LLMError(
                    "Completion response is not a JSON object",
                    status_code=response.status_code,
                )
            choices = data.get("choices") or []
            if not choices:
                raise LLMError("No choices in completion response")
            content = (choices[0].get("message") or {}).get("content") or ""
            if not content.strip():
                raise LLMError("Empty completion content")
            logger.debug(f"LLM tokens: {data.get('usage', {}).get('total_tokens', 'N/A')}")
            return content.strip()

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise LLMRateLimitError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if response.status_code >= 500:
            raise LLMError(
                f"Server error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            error_msg = response.json().get("error", {}).get(
                "message", f"HTTP {response.status_code}"
            )
        except (ValueError, AttributeError):
            error_msg = f"HTTP {response.status_code}"

        raise LLMError(error_msg, status_code=response.status_code)

    async def chat(self, system_prompt: str, user_prompt: str) -> str:
        """Run one chat completion and return the assistant's text.

        Args:
            system_prompt: System instructions for the model
            user_prompt: User message/request

        Returns:
            Generated text (stripped)

        Raises:
            LLMError: On API error, empty reply or retries exhausted
        """
        label = f"LLM/{self.model}"
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES):
            try:
                return await self._call(system_prompt, user_prompt)

            except LLMRateLimitError as e:
                wait_time = e.retry_after or (BASE_BACKOFF * (2 ** attempt))
                logger.warning(
                    f"{label} rate limited, retry after {wait_time}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                last_error = e

            except LLMError as e:
                if not (e.status_code and e.status_code >= 500):
                    raise
                wait_time = BASE_BACKOFF * (2 ** attempt)
                logger.warning(
                    f"{label} server error, retry in {wait_time}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                last_error = e

            except httpx.RequestError as e:
                wait_time = BASE_BACKOFF * (2 ** attempt)
                logger.warning(
                    f"{label} request error: {e}, retry in {wait_time}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                last_error = e

            if attempt < MAX_RETRIES - 1:
                await asyncio.sleep(wait_time)

        raise LLMError(f"Max retries exceeded ({label}): {last_error}")
