# bintel/aggregator/trade_stats.py
from dataclasses import dataclass

DECAY_EVERY = 1000
DECAY_FACTOR = 1000
MIN_TREND_SAMPLES = 10


@dataclass
class RollingTradeStats:
    """Maker/Taker 成交额累计, 每 1000 笔整体除以 1000 (近似指数衰减)"""

    maker: float = 0.0
    taker: float = 0.0
    count: int = 0

    def update(self, is_maker: bool, value: float) -> None:
        self.count += 1
        if self.count % DECAY_EVERY == 0:
            self.maker /= DECAY_FACTOR
            self.taker /= DECAY_FACTOR
        if is_maker:
            self.maker += value
        else:
            self.taker += value

    @property
    def has_data(self) -> bool:
        return self.maker != 0 and self.taker != 0 and self.count != 0

    @property
    def trend(self) -> float | None:
        """maker / (maker + taker), 样本不足时为 None"""
        if not self.has_data or self.count < MIN_TREND_SAMPLES:
            return None
        return self.maker / (self.maker + self.taker)
