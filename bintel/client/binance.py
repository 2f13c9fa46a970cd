"""Binance Spot REST 客户端"""

import json
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from bintel.client.models import SymbolInfo, Ticker


class BinanceAPIError(Exception):
    """Binance API 错误"""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass
class BinanceClient:
    """Binance Spot API 客户端"""

    base_url: str = "https://api.binance.com"
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """发送 HTTP 请求"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Call init() or use 'async with'.")

        url = f"{self.base_url}{endpoint}"
        headers = {"Accept": "application/json"}

        if method == "GET":
            response = await self._session.get(url, params=params, headers=headers)
        else:
            response = await self._session.post(url, data=params, headers=headers)

        if response.status != 200:
            error_text = await response.text()
            try:
                error_data = json.loads(error_text)
                raise BinanceAPIError(error_data.get("code", -1), error_data.get("msg", error_text))
            except json.JSONDecodeError:
                raise BinanceAPIError(-1, error_text)

        return await response.json()

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "BinanceClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def get_ticker(self, symbol: str) -> Ticker:
        """获取 24 小时行情"""
        data = await self._request("GET", "/api/v3/ticker/24hr", {"symbol": symbol.upper()})
        return Ticker.from_api(data)

    async def get_symbol_info(self, symbol: str) -> SymbolInfo:
        """获取交易对元数据"""
        data = await self._request("GET", "/api/v3/exchangeInfo", {"symbol": symbol.upper()})
        symbols = data.get("symbols") or []
        if not symbols:
            raise BinanceAPIError(-1121, f"Unknown symbol: {symbol}")
        info = symbols[0]
        return SymbolInfo(
            symbol=info["symbol"],
            base_asset=info["baseAsset"],
            quote_asset=info["quoteAsset"],
        )
