"""
Tests for market_data.pipeline.base: request retries and identity checks.
"""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
import respx

from market_data.errors import SourceError
from market_data.pipeline.base import NO_IDENTITY, confirm_identity
from market_data.pipeline.ebay import EbaySoldAdapter

EBAY_HOST = "ebay-search-result.p.rapidapi.com"


def _item(**attrs) -> SimpleNamespace:
    values = {
        "name": "Pikachu",
        "category": "pokemon",
        "set_code": "SV1",
        "card_number": "025",
        "variant": None,
        "language": "EN",
    }
    values.update(attrs)
    return SimpleNamespace(**values)


def _adapter(**kwargs) -> EbaySoldAdapter:
    kwargs.setdefault("max_retries", 2)
    return EbaySoldAdapter(api_key="test", request_delay=0, base_backoff=0, **kwargs)


class TestConfirmIdentity:
    def test_match_builds_item_key(self) -> None:
        key, reason = confirm_identity(_item(), None, "25")
        assert key == "pokemon:set=sv1:num=25:lang=en"
        assert reason is None

    def test_missing_number(self) -> None:
        assert confirm_identity(_item(), None, None) == (None, NO_IDENTITY)

    def test_mismatch(self) -> None:
        key, reason = confirm_identity(_item(), None, "52")
        assert key is None
        assert reason == "Card number mismatch: found 52, expected 25"


class TestRequestRetries:
    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self) -> None:
        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                side_effect=[
                    httpx.Response(429),
                    httpx.Response(200, json={"results": []}),
                ]
            )
            async with _adapter() as adapter:
                assert await adapter.fetch_listings(_item()) == []

        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self) -> None:
        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                side_effect=[
                    httpx.Response(503),
                    httpx.Response(200, json={"results": []}),
                ]
            )
            async with _adapter() as adapter:
                await adapter.fetch_listings(_item())

        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_client_error_fails_immediately(self) -> None:
        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(403)
            )
            async with _adapter() as adapter:
                with pytest.raises(SourceError) as exc_info:
                    await adapter.fetch_listings(_item())

        assert route.call_count == 1
        assert exc_info.value.status_code == 403
        assert exc_info.value.source == "ebay"

    @pytest.mark.asyncio
    async def test_retries_exhausted(self) -> None:
        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                return_value=httpx.Response(500)
            )
            async with _adapter(max_retries=1) as adapter:
                with pytest.raises(SourceError, match="after 2 attempts"):
                    await adapter.fetch_listings(_item())

        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self) -> None:
        with respx.mock:
            route = respx.get(host=EBAY_HOST, path__regex=r"^/search/").mock(
                side_effect=[
                    httpx.ConnectError("boom"),
                    httpx.Response(200, json={"results": []}),
                ]
            )
            async with _adapter() as adapter:
                await adapter.fetch_listings(_item())

        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_request_outside_context_manager(self) -> None:
        adapter = _adapter()
        with pytest.raises(AssertionError):
            await adapter.fetch_listings(_item())
