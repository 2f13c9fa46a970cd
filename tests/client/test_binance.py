import pytest
from unittest.mock import AsyncMock, MagicMock

from bintel.client.binance import BinanceClient, BinanceAPIError


def _session(status: int = 200, json_data=None, text: str = "") -> MagicMock:
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=json_data)
    mock_response.text = AsyncMock(return_value=text)

    mock_session = MagicMock()
    mock_session.get = AsyncMock(return_value=mock_response)
    return mock_session


def test_binance_client_init():
    client = BinanceClient()
    assert client.base_url == "https://api.binance.com"


@pytest.mark.asyncio
async def test_request_requires_session():
    client = BinanceClient()

    with pytest.raises(RuntimeError):
        await client._request("GET", "/api/v3/ticker/24hr", {"symbol": "BTCUSDT"})


@pytest.mark.asyncio
async def test_request_handles_error():
    client = BinanceClient()
    client._session = _session(status=400, text='{"code": -1121, "msg": "Invalid symbol."}')

    with pytest.raises(BinanceAPIError, match="Invalid symbol") as exc_info:
        await client._request("GET", "/api/v3/ticker/24hr", {"symbol": "INVALID"})
    assert exc_info.value.code == -1121


@pytest.mark.asyncio
async def test_request_handles_non_json_error():
    client = BinanceClient()
    client._session = _session(status=502, text="Bad Gateway")

    with pytest.raises(BinanceAPIError) as exc_info:
        await client._request("GET", "/api/v3/ticker/24hr")
    assert exc_info.value.code == -1
    assert exc_info.value.message == "Bad Gateway"


@pytest.mark.asyncio
async def test_get_ticker():
    client = BinanceClient()
    client._session = _session(
        json_data={
            "symbol": "BNBBTC",
            "priceChangePercent": "-1.250",
            "lastPrice": "0.00812300",
            "highPrice": "0.00830000",
            "lowPrice": "0.00800100",
            "volume": "120345.50000000",
        }
    )

    ticker = await client.get_ticker("bnbbtc")

    assert ticker.symbol == "BNBBTC"
    assert ticker.price_change_percent == -1.25
    assert ticker.last_price == 0.008123
    assert ticker.volume == 120345.5
    _, kwargs = client._session.get.call_args
    assert kwargs["params"] == {"symbol": "BNBBTC"}


@pytest.mark.asyncio
async def test_get_symbol_info():
    client = BinanceClient()
    client._session = _session(
        json_data={
            "timezone": "UTC",
            "symbols": [{"symbol": "ETHBTC", "baseAsset": "ETH", "quoteAsset": "BTC", "status": "TRADING"}],
        }
    )

    info = await client.get_symbol_info("ETHBTC")

    assert info.symbol == "ETHBTC"
    assert info.base_asset == "ETH"
    assert info.quote_asset == "BTC"


@pytest.mark.asyncio
async def test_get_symbol_info_unknown_symbol():
    client = BinanceClient()
    client._session = _session(json_data={"symbols": []})

    with pytest.raises(BinanceAPIError):
        await client.get_symbol_info("NOPE")


@pytest.mark.asyncio
async def test_context_manager_closes_session():
    async with BinanceClient() as client:
        assert client._session is not None
    assert client._session is None
