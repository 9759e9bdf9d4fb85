"""
Market Data: Source Adapter base

Shared plumbing for every vendor adapter: an httpx AsyncClient opened as an
async context manager, a bounded-timeout request loop with exponential
backoff on 429 / 5xx / transport errors, and an explicit delay between
calls to respect per-second vendor caps.

Vendor field names never leave the adapter: each one turns its payloads
into ParsedListing objects, and ingestion only ever sees those.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from market_data.config import EventType, settings
from market_data.engine.canonical_key import build_normalized_key, normalize_card_number, normalize_game
from market_data.engine.title_screen import RAW
from market_data.errors import SourceError

logger = structlog.get_logger(__name__)

NO_IDENTITY = "Could not extract card identity from title"


# ---------------------------------------------------------------------------
# Adapter output
# ---------------------------------------------------------------------------


class ParsedListing(BaseModel):
    """One vendor observation in source-neutral form."""

    source_event_id: str = Field(..., description="Vendor-stable id, unique per source")
    event_type: EventType
    amount: Decimal
    currency: str = Field(default="USD", max_length=3)
    amount_usd: Decimal | None = Field(
        default=None, description="USD figure supplied by the vendor; no conversion"
    )
    condition: str = RAW
    grade_company: str | None = None
    grade_value: Decimal | None = None
    canonical_key: str | None = Field(
        default=None, description="Key of the identity confirmed from the payload"
    )
    match_confidence: Decimal | None = None
    unmatched_reason: str | None = None
    is_outlier: bool = False
    outlier_reason: str | None = None
    title: str | None = None
    external_url: str | None = None
    sold_at: datetime | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_matched(self) -> bool:
        return self.canonical_key is not None


def confirm_identity(
    item: Any,
    set_code: str | None,
    card_number: str | None,
) -> tuple[str | None, str | None]:
    """
    Check a parsed (set_code, card_number) against the item it was fetched for.

    Only an exact collector-number match confirms identity; there is no
    partial credit.

    Returns:
        (canonical_key, None) on a match, (None, reason) otherwise.
    """
    if not card_number:
        return None, NO_IDENTITY

    game = normalize_game(item.category)
    expected = normalize_card_number(game, item.set_code, item.card_number)
    found = normalize_card_number(game, set_code or item.set_code, card_number)
    if expected is None or found != expected:
        return None, f"Card number mismatch: found {found}, expected {expected}"

    key = build_normalized_key(
        game, item.set_code, item.card_number, item.variant, None, item.language
    )
    return key, None


# ---------------------------------------------------------------------------
# Adapter base
# ---------------------------------------------------------------------------


class SourceAdapter(ABC):
    """
    Base class for vendor adapters.

    Usage:
        async with EbaySoldAdapter() as adapter:
            raw = await adapter.fetch_listings(item)
            parsed = [adapter.parse_listing(r, item) for r in raw]
    """

    source: str = ""
    event_type: EventType = EventType.SALE
    base_url: str = ""

    def __init__(
        self,
        api_key: str | None = None,
        request_delay: float = 0.0,
        max_retries: int | None = None,
        base_backoff: float | None = None,
        timeout: float | None = None,
    ):
        self._api_key = api_key or ""
        self._request_delay = request_delay
        self._max_retries = max_retries if max_retries is not None else settings.HTTP_MAX_RETRIES
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.HTTP_BASE_BACKOFF_SECONDS
        )
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {}

    async def __aenter__(self) -> SourceAdapter:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def throttle(self) -> None:
        """Explicit inter-request delay; vendor calls are never concurrent."""
        if self._request_delay > 0:
            await asyncio.sleep(self._request_delay)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an API request with retry logic and exponential backoff.

        Retries 429, 5xx and transport errors. Other 4xx responses fail
        immediately.

        Raises:
            SourceError: on a non-retryable status or when retries run out.
        """
        assert self._client is not None, "Client not initialized. Use 'async with'."

        last_error: Exception | None = None
        last_status: int | None = None

        for attempt in range(self._max_retries + 1):
            wait_time = self._base_backoff * (2 ** attempt)
            try:
                response = await self._client.request(method, path, params=params)

                if response.status_code == 429:
                    last_status = 429
                    logger.warning(
                        "source_rate_limited",
                        source=self.source,
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                last_error = e
                last_status = e.response.status_code
                logger.error(
                    "source_http_error",
                    source=self.source,
                    status_code=last_status,
                    attempt=attempt + 1,
                    path=path,
                )
                if last_status >= 500:
                    await asyncio.sleep(wait_time)
                    continue
                raise SourceError(self.source, f"API error {last_status}", last_status) from e

            except httpx.RequestError as e:
                last_error = e
                logger.error(
                    "source_request_error",
                    source=self.source,
                    error=str(e),
                    attempt=attempt + 1,
                    path=path,
                )
                await asyncio.sleep(wait_time)
                continue

        raise SourceError(
            self.source,
            f"request failed after {self._max_retries + 1} attempts",
            last_status,
        ) from last_error

    # -----------------------------------------------------------------------
    # Vendor-specific contract
    # -----------------------------------------------------------------------

    @abstractmethod
    async def fetch_listings(self, item: Any) -> list[dict[str, Any]]:
        """Raw vendor payloads relevant to one market item."""

    @abstractmethod
    def parse_listing(self, payload: dict[str, Any], item: Any) -> list[ParsedListing]:
        """
        Turn one vendor payload into zero or more ParsedListings.

        A payload with no usable price yields nothing. Vendors that quote
        several buckets at once (raw and graded) yield one listing per
        bucket.
        """
