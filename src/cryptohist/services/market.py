"""Async HTTP client for the CryptoCompare histohour API with retry logic."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ..config import QUOTE_CURRENCY, Settings
from ..db.schema import validate_symbol
from ..dto import CryptoCompareResponse, Quote
from ..errors import FetchError

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class RetryableFetchError(FetchError):
    """Remote answered with a status worth another attempt."""


class CryptoCompareClient:
    """Async client for hourly history pages with connection reuse and retries."""

    def __init__(
        self,
        config: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = logger or structlog.get_logger()

    async def __aenter__(self) -> "CryptoCompareClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            http2=True,
            timeout=self.config.request_timeout,
            headers={
                "Accept-Encoding": "gzip",
                "User-Agent": "cryptohist/1.0",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self._logger.warning(
            "fetch_retry", attempt=retry_state.attempt_number, error=str(error)
        )

    async def _request_with_retry(self, url: str, params: dict[str, Any]) -> httpx.Response:
        """Make HTTP request, retrying timeouts, connection errors and 429/5xx."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.max_retries)),
            wait=wait_exponential_jitter(
                initial=self.config.retry_initial_wait, max=self.config.retry_max_wait
            ),
            retry=retry_if_exception_type((httpx.TransportError, RetryableFetchError)),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                response = await self._client.get(url, params=params)
                if response.status_code in RETRYABLE_STATUS:
                    raise RetryableFetchError(
                        f"Retryable HTTP error: {response.status_code}", response.status_code
                    )
                response.raise_for_status()
                return response

    async def fetch_page(self, symbol: str, before_time: int) -> list[Quote]:
        """Fetch up to ``page_size`` hourly quotes ending at ``before_time``.

        Args:
            symbol: Instrument symbol (e.g., 'BTC')
            before_time: Unix timestamp of the newest quote wanted

        Returns:
            Quotes in the order the API returned them (ascending by time)

        Raises:
            FetchError: On transport failure, an undecodable body or an
                error envelope from the API
        """
        validate_symbol(symbol)

        url = f"{self.config.base_url}/histohour"
        params: dict[str, Any] = {
            "fsym": symbol,
            "tsym": QUOTE_CURRENCY,
            "limit": self.config.page_size,
            "aggregate": self.config.aggregate,
            "toTs": before_time,
        }
        if self.config.api_key:
            params["api_key"] = self.config.api_key

        try:
            response = await self._request_with_retry(url, params)
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"HTTP error for {symbol}: {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.TransportError as e:
            raise FetchError(f"Request for {symbol} failed: {e!r}") from e

        try:
            envelope = CryptoCompareResponse.model_validate(response.json())
        except ValueError as e:
            raise FetchError(f"There was an error parsing the response for {symbol}: {e}") from e

        if envelope.is_error:
            raise FetchError(f"API error for {symbol}: {envelope.message or 'unknown error'}")

        self._logger.debug(
            "page_fetched", symbol=symbol, before_time=before_time, count=len(envelope.data)
        )
        return envelope.data
