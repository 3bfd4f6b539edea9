"""
Data sources: the transport behind RateLimitedClient.

LiveSource talks HTTP to a real provider; SimulatedSource returns fixture
payloads. The variant is chosen once when the pipeline is wired up and the
client never branches on it. Both raise the same errors so the retry logic
is identical for either.
"""

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from ..config import PROVIDERS
from ..errors import ConfigurationError, RateLimitedError, TransientProviderError
from ..schemas import FetchRequest
from .mock_responses import get_mock_payload

logger = logging.getLogger(__name__)


class DataSource:
    """Base class. send() returns the decoded JSON body or raises TransientProviderError."""

    name = "base"

    async def send(self, request: FetchRequest) -> Dict[str, Any]:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class LiveSource(DataSource):
    """
    HTTP GET against one provider config from PROVIDERS.

    Error mapping:
      429                      → RateLimitedError (retryable)
      5xx / timeout / network  → TransientProviderError (retryable)
      other 4xx                → TransientProviderError(retryable=False)
      body status == "error"   → same, depending on the provider's error code
    """

    name = "live"

    def __init__(
        self,
        provider_config: Dict[str, Any],
        api_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError(f"No API key configured for provider '{provider_config.get('id')}'")
        self.provider = provider_config["id"]
        self.base_url = provider_config["base_url"].rstrip("/")
        self.key_param = provider_config.get("key_param", "apikey")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def for_provider(cls, provider: str, settings, transport=None) -> "LiveSource":
        config = PROVIDERS.get(provider)
        if config is None:
            raise ConfigurationError(f"Unknown provider '{provider}'")
        return cls(config, settings.api_key_for(provider), settings.request_timeout_seconds, transport)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"User-Agent": "regional-news-aggregator/1.0"},
            )
        return self._client

    async def send(self, request: FetchRequest) -> Dict[str, Any]:
        url = f"{self.base_url}/{request.endpoint.lstrip('/')}"
        params = request.query_params()
        params[self.key_param] = self._api_key

        try:
            response = await self._get_client().get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"[TIMEOUT] {self.provider}: {request.signature()}")
            raise TransientProviderError(self.provider, f"timeout after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise TransientProviderError(self.provider, f"network error: {e}") from e

        status = response.status_code
        if status == 429:
            raise RateLimitedError(self.provider, "HTTP 429 Too Many Requests", status_code=429)
        if status >= 500:
            raise TransientProviderError(self.provider, f"HTTP {status}", status_code=status)
        if status >= 400:
            raise TransientProviderError(self.provider, f"HTTP {status}", status_code=status, retryable=False)

        try:
            body = response.json()
        except ValueError as e:
            raise TransientProviderError(self.provider, "response body is not JSON", status_code=status) from e

        if not isinstance(body, dict):
            raise TransientProviderError(self.provider, "response body is not a JSON object", status_code=status)

        if str(body.get("status", "")).lower() == "error":
            # newsdata nests {code, message} under results; newsapi puts them at top level
            detail = body.get("results") if isinstance(body.get("results"), dict) else body
            code = str(detail.get("code") or "")
            message = detail.get("message") or code or "provider returned error status"
            if "rate" in code.lower() or "limit" in code.lower():
                raise RateLimitedError(self.provider, message, status_code=status)
            raise TransientProviderError(self.provider, message, status_code=status, retryable=False)

        return body

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SimulatedSource(DataSource):
    """Returns generated fixture payloads; no network, no credentials."""

    name = "simulated"

    def __init__(self, fixture_generator: Callable[[FetchRequest], Dict[str, Any]] = get_mock_payload):
        self._generate = fixture_generator

    async def send(self, request: FetchRequest) -> Dict[str, Any]:
        return self._generate(request)
