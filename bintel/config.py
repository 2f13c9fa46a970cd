# bintel/config.py
from pathlib import Path

import yaml
from pydantic import BaseModel


class DatabaseConfig(BaseModel):
    path: str = "data/bintel.db"
    in_memory: bool = False
    retention_minutes: int = 60
    sample_period_minutes: int = 10


class TradesConfig(BaseModel):
    quotes: list[str] = ["USDT", "BTC", "BNB", "ETH"]
    default_quote: str = "USDT"
    threshold: float = 50000


class FilterConfig(BaseModel):
    quote: str = ""  # 逗号分隔, 如 "USDT,BTC"
    base: str = ""
    percent: float = 0  # >0 涨幅下限, <0 跌幅上限


class CacheConfig(BaseModel):
    max_symbols: int = 1024


class ReconnectConfig(BaseModel):
    initial_delay_seconds: float = 1
    max_delay_seconds: float = 60


class Config(BaseModel):
    binance_terminal: str = "https://www.binance.com/en/trade/"
    enable_mouse: bool = True
    ticker_interval_seconds: int = 30
    disable_logging: bool = False
    log_path: str = "data/bintel.log"
    database: DatabaseConfig = DatabaseConfig()
    trades: TradesConfig = TradesConfig()
    filter: FilterConfig = FilterConfig()
    cache: CacheConfig = CacheConfig()
    reconnect: ReconnectConfig = ReconnectConfig()


def load_config(path: Path) -> Config:
    if not path.exists():
        return Config()
    with open(path) as f:
        data = yaml.safe_load(f)
    return Config(**(data or {}))
