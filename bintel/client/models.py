"""Binance REST 数据模型"""

from dataclasses import dataclass
from typing import Any


@dataclass
class SymbolInfo:
    """交易对元数据 (exchangeInfo)"""

    symbol: str
    base_asset: str
    quote_asset: str


@dataclass
class Ticker:
    """24 小时行情快照"""

    symbol: str
    price_change_percent: float
    last_price: float
    high_price: float
    low_price: float
    volume: float

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Ticker":
        # REST 接口以字符串返回数值
        return cls(
            symbol=data["symbol"],
            price_change_percent=float(data["priceChangePercent"]),
            last_price=float(data["lastPrice"]),
            high_price=float(data["highPrice"]),
            low_price=float(data["lowPrice"]),
            volume=float(data["volume"]),
        )
