# bintel/storage/models.py
from dataclasses import dataclass

NOTICE_TYPES = ("PRICE_CHANGE", "PRICE_BREAKTHROUGH", "BLOCK_TRADE", "VOLUME_PRICE")


@dataclass(frozen=True)
class NoticeEvent:
    event_type: str  # UP_1 / BLOCK_TRADES_BUY / HIGH_VOLUME_RISE_1 / ...
    notice_type: str  # NOTICE_TYPES
    symbol: str  # BTCUSDT
    base_asset: str
    quote_asset: str
    volume: float
    price_change: float  # 小数, 0.05 = 5%
    period: str  # MINUTE_5 / HOUR_2 / DAY_1 / ...
    send_timestamp: int  # ms


@dataclass(frozen=True)
class Trade:
    event_type: str  # aggTrade
    symbol: str
    quantity: float
    price: float
    event_timestamp: int  # ms
    trade_timestamp: int  # ms
    trade_id: int  # aggregate trade id, 与请求 id 无关
    is_maker: bool

    @property
    def notional(self) -> float:
        return self.price * self.quantity


@dataclass
class AssetStat:
    name: str
    momentum: float
    avg_volume: float
