# bintel/aggregator/filters.py
import logging
from dataclasses import dataclass

from bintel.config import FilterConfig
from bintel.storage.models import NoticeEvent, Trade

from .symbol_cache import FETCH_ERRORS, SymbolCache
from .trade_stats import RollingTradeStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventFilter:
    quote: str = ""  # 逗号分隔的白名单
    base: str = ""
    percent: float = 0.0  # 正数: 涨幅 >= percent; 负数: 跌幅 <= percent

    @classmethod
    def from_config(cls, config: FilterConfig) -> "EventFilter":
        return cls(quote=config.quote, base=config.base, percent=config.percent)

    @property
    def is_empty(self) -> bool:
        return not self.quote and not self.base and self.percent == 0


def _allowed(value: str, allow_list: str) -> bool:
    return value in (item.strip() for item in allow_list.split(","))


def matches_event_filter(event: NoticeEvent, f: EventFilter) -> bool:
    if f.is_empty:
        return True

    quote_ok = _allowed(event.quote_asset, f.quote) if f.quote else True
    base_ok = _allowed(event.base_asset, f.base) if f.base else True

    percent_ok = True
    change = event.price_change * 100
    if f.percent > 0:
        percent_ok = change >= f.percent
    elif f.percent < 0:
        percent_ok = change <= f.percent

    return quote_ok and base_ok and percent_ok


class TradeFilter:
    """按成交额阈值筛选大单, 同时更新全量 maker/taker 统计"""

    def __init__(
        self,
        cache: SymbolCache,
        stats: RollingTradeStats,
        threshold: float,
        default_quote: str,
        log_accepted: bool = True,
    ):
        self.cache = cache
        self.stats = stats
        self.threshold = threshold
        self.default_quote = default_quote
        self.log_accepted = log_accepted

    async def price_limit(self, quote_asset: str) -> float:
        """把默认计价币种的阈值换算到该交易对的计价币种"""
        if quote_asset == self.default_quote:
            return self.threshold

        rate_symbol = quote_asset + self.default_quote
        try:
            rate = await self.cache.get_ticker(rate_symbol)
        except FETCH_ERRORS as e:
            logger.warning(f"No exchange rate for {rate_symbol}: {e}")
            return self.threshold
        if rate.last_price > 0:
            return self.threshold / rate.last_price
        return self.threshold

    async def matches(self, trade: Trade) -> bool:
        # 首次出现的交易对需要同步拉取元数据, 期间会阻塞消费循环
        try:
            info = await self.cache.get_info(trade.symbol)
            await self.cache.get_ticker(trade.symbol)
        except FETCH_ERRORS as e:
            logger.warning(f"Rejecting trade for {trade.symbol}, metadata unavailable: {e}")
            return False

        limit = await self.price_limit(info.quote_asset)

        normalized = trade.notional
        if self.threshold > 0:
            normalized = trade.notional * limit / self.threshold
        self.stats.update(trade.is_maker, normalized)

        if trade.notional >= limit:
            if self.log_accepted:
                logger.info(f"Large trade over {limit:.8g} {info.quote_asset}: {trade}")
            return True
        return False
