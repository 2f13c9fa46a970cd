# tests/aggregator/test_symbol_cache.py
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from bintel.aggregator.symbol_cache import SymbolCache
from bintel.client.binance import BinanceAPIError
from bintel.client.models import SymbolInfo, Ticker


def _ticker(symbol: str, price: float = 1.0) -> Ticker:
    return Ticker(
        symbol=symbol,
        price_change_percent=1.5,
        last_price=price,
        high_price=price,
        low_price=price,
        volume=10.0,
    )


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.get_symbol_info = AsyncMock(
        side_effect=lambda symbol: SymbolInfo(symbol=symbol, base_asset=symbol[:-4], quote_asset=symbol[-4:])
    )
    client.get_ticker = AsyncMock(side_effect=lambda symbol: _ticker(symbol))
    return client


async def test_get_info_fetches_once(client):
    cache = SymbolCache(client)

    first = await cache.get_info("BTCUSDT")
    second = await cache.get_info("BTCUSDT")

    assert first is second
    assert first.base_asset == "BTC"
    client.get_symbol_info.assert_awaited_once_with("BTCUSDT")


async def test_get_ticker_fetches_on_miss(client):
    cache = SymbolCache(client)
    assert cache.cached_ticker("ETHUSDT") is None

    ticker = await cache.get_ticker("ETHUSDT")
    await cache.get_ticker("ETHUSDT")

    assert cache.cached_ticker("ETHUSDT") is ticker
    client.get_ticker.assert_awaited_once()


async def test_cache_evicts_least_recently_used(client):
    cache = SymbolCache(client, max_symbols=2)

    await cache.get_info("AAAUSDT")
    await cache.get_info("BBBUSDT")
    # 访问 AAA, 使 BBB 成为最久未使用
    cache.cached_info("AAAUSDT")
    await cache.get_info("CCCUSDT")

    assert list(cache.info) == ["AAAUSDT", "CCCUSDT"]
    assert cache.cached_info("BBBUSDT") is None


async def test_refresh_ticker_overwrites(client):
    cache = SymbolCache(client)
    await cache.get_ticker("BTCUSDT")
    client.get_ticker = AsyncMock(return_value=_ticker("BTCUSDT", price=42000.0))

    await cache.refresh_ticker("BTCUSDT")

    assert cache.cached_ticker("BTCUSDT").last_price == 42000.0


async def test_refresh_tickers_skips_failures(client):
    async def get_ticker(symbol: str) -> Ticker:
        if symbol == "BADUSDT":
            raise BinanceAPIError(-1121, "Invalid symbol.")
        if symbol == "NETUSDT":
            raise aiohttp.ClientConnectionError("reset")
        return _ticker(symbol)

    client.get_ticker = AsyncMock(side_effect=get_ticker)
    cache = SymbolCache(client)

    refreshed = await cache.refresh_tickers(["BTCUSDT", "BADUSDT", "NETUSDT", "ETHUSDT"])

    assert refreshed == 2
    assert set(cache.tickers) == {"BTCUSDT", "ETHUSDT"}
