# bintel/aggregator/symbol_cache.py
import asyncio
import logging
from collections import OrderedDict
from collections.abc import Iterable
from typing import TypeVar

import aiohttp

from bintel.client.binance import BinanceAPIError, BinanceClient
from bintel.client.models import SymbolInfo, Ticker

logger = logging.getLogger(__name__)

FETCH_ERRORS = (BinanceAPIError, aiohttp.ClientError, asyncio.TimeoutError, KeyError, ValueError)

V = TypeVar("V")


class SymbolCache:
    """
    交易对元数据与行情缓存

    未命中时通过 REST 拉取; 元数据不主动失效, 行情由定时任务刷新.
    两个缓存各自最多保留 max_symbols 项, 超出时淘汰最久未使用的交易对.
    """

    def __init__(self, client: BinanceClient, max_symbols: int = 1024):
        self.client = client
        self.max_symbols = max_symbols
        self.info: OrderedDict[str, SymbolInfo] = OrderedDict()
        self.tickers: OrderedDict[str, Ticker] = OrderedDict()

    def _store(self, cache: "OrderedDict[str, V]", key: str, value: V) -> None:
        cache[key] = value
        cache.move_to_end(key)
        while len(cache) > self.max_symbols:
            evicted, _ = cache.popitem(last=False)
            logger.debug(f"Evicted {evicted} from symbol cache")

    def cached_info(self, symbol: str) -> SymbolInfo | None:
        info = self.info.get(symbol)
        if info is not None:
            self.info.move_to_end(symbol)
        return info

    def cached_ticker(self, symbol: str) -> Ticker | None:
        ticker = self.tickers.get(symbol)
        if ticker is not None:
            self.tickers.move_to_end(symbol)
        return ticker

    async def get_info(self, symbol: str) -> SymbolInfo:
        info = self.cached_info(symbol)
        if info is None:
            logger.info(f"Getting info for {symbol}")
            info = await self.client.get_symbol_info(symbol)
            self._store(self.info, symbol, info)
        return info

    async def get_ticker(self, symbol: str) -> Ticker:
        ticker = self.cached_ticker(symbol)
        if ticker is None:
            ticker = await self.refresh_ticker(symbol)
        return ticker

    async def refresh_ticker(self, symbol: str) -> Ticker:
        ticker = await self.client.get_ticker(symbol)
        self._store(self.tickers, symbol, ticker)
        return ticker

    async def refresh_tickers(self, symbols: Iterable[str]) -> int:
        refreshed = 0
        for symbol in symbols:
            try:
                await self.refresh_ticker(symbol)
                refreshed += 1
            except FETCH_ERRORS as e:
                logger.warning(f"Failed to refresh ticker {symbol}: {e}")
        return refreshed
