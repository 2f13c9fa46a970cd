# bintel/main.py
import argparse
import asyncio
import logging
import sys
from collections.abc import Coroutine, Sequence
from pathlib import Path
from typing import Any

import aiosqlite
import websockets

from bintel.aggregator.filters import EventFilter, TradeFilter, matches_event_filter
from bintel.aggregator.symbol_cache import FETCH_ERRORS, SymbolCache
from bintel.aggregator.trade_stats import RollingTradeStats
from bintel.client.binance import BinanceClient
from bintel.collector.base import BaseCollector, ControlSignal, FeedMessage, FeedSource
from bintel.collector.notices import NoticeCollector
from bintel.collector.subscriptions import SubscriptionManager
from bintel.collector.trades import TradesCollector
from bintel.config import Config, load_config
from bintel.storage.database import Database
from bintel.storage.models import NoticeEvent, Trade
from bintel.ui.app import TerminalApp
from bintel.ui.formatter import (
    format_detail,
    format_event_row,
    format_trade_row,
    render_momentum_table,
    render_trend_bar,
)
from bintel.ui.sink import DashboardSink, Pane

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(config: Config) -> None:
    # 终端被 TUI 占用, 日志只写文件
    Path(config.log_path).parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=config.log_path,
        level=logging.WARNING if config.disable_logging else logging.INFO,
        format=LOG_FORMAT,
    )


class Terminal:
    def __init__(self, config: Config, sink: DashboardSink | None = None):
        self.config = config
        self.sink = sink
        log_traffic = not config.disable_logging

        self.db = Database(
            config.database.path,
            retention_minutes=config.database.retention_minutes,
            sample_period_minutes=config.database.sample_period_minutes,
            in_memory=config.database.in_memory,
        )
        self.client = BinanceClient()
        self.cache = SymbolCache(self.client, max_symbols=config.cache.max_symbols)
        self.trade_stats = RollingTradeStats()
        self.trade_filter = TradeFilter(
            self.cache,
            self.trade_stats,
            threshold=config.trades.threshold,
            default_quote=config.trades.default_quote,
            log_accepted=log_traffic,
        )

        self.inbox: asyncio.Queue[FeedMessage] = asyncio.Queue()
        self.notices = NoticeCollector(self.inbox, log_messages=log_traffic)
        self.trades = TradesCollector(self.inbox, log_messages=log_traffic)
        self.subscriptions = SubscriptionManager(self.trades.send, log_requests=log_traffic)

        self.running = False
        self._tasks: list[asyncio.Task[None]] = []
        self._background: set[asyncio.Task[None]] = set()
        self._reconnect_delay: dict[FeedSource, float] = {}
        self._reconnecting: set[FeedSource] = set()

    @property
    def event_filter(self) -> EventFilter:
        return EventFilter.from_config(self.config.filter)

    async def init(self) -> None:
        if not self.config.database.in_memory:
            Path(self.config.database.path).parent.mkdir(parents=True, exist_ok=True)

        await self.db.init()
        await self.client.init()
        # 交易流连接失败直接退出
        await self.trades.connect()

    async def start(self) -> None:
        self.running = True
        await self.notices.start()
        await self.trades.start()
        await self.subscriptions.start()
        self._tasks = [
            asyncio.create_task(self._consume()),
            asyncio.create_task(self._refresh_tickers()),
        ]
        logger.info("bintel started")

    async def stop(self) -> None:
        self.running = False
        tasks = self._tasks + list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []

        await self.subscriptions.stop()
        await self.notices.stop()
        await self.trades.stop()
        await self.client.close()
        await self.db.close()
        logger.info("bintel stopped")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def handle_event(self, event: NoticeEvent) -> bool:
        if not matches_event_filter(event, self.event_filter):
            return False

        try:
            await self.db.insert_event(event)
        except aiosqlite.Error as e:
            logger.error(f"Error inserting event into db: {e}")

        if self.sink:
            ticker = self.cache.cached_ticker(event.symbol)
            if ticker is None:
                try:
                    ticker = await self.cache.get_ticker(event.symbol)
                except FETCH_ERRORS as e:
                    logger.warning(f"No ticker for {event.symbol}: {e}")
            row = format_event_row(event, ticker)
            if row:
                self.sink.append_row(row)
        return True

    async def handle_trade(self, trade: Trade) -> bool:
        if not await self.trade_filter.matches(trade):
            return False

        info = self.cache.cached_info(trade.symbol)
        if info is None:
            return False

        try:
            await self.db.insert_trade(trade, info.base_asset, info.quote_asset)
        except aiosqlite.Error as e:
            logger.error(f"Error inserting trade into db: {e}")

        if self.sink:
            row = format_trade_row(trade, info, self.cache.cached_ticker(trade.symbol))
            if row:
                self.sink.append_row(row)
        return True

    def handle_control(self, source: FeedSource, signal: ControlSignal) -> None:
        logger.warning(f"{source.value} feed control signal: {signal.reason}")
        if not signal.fatal or not self.running or source in self._reconnecting:
            return
        collector: BaseCollector = self.notices if source is FeedSource.NOTICES else self.trades
        self._reconnecting.add(source)
        self._spawn(self._reconnect(collector))

    async def _reconnect(self, collector: BaseCollector) -> None:
        source = collector.source
        reconnect = self.config.reconnect
        delay = self._reconnect_delay.get(source, reconnect.initial_delay_seconds)
        self._reconnect_delay[source] = min(delay * 2, reconnect.max_delay_seconds)
        logger.warning(f"Reconnecting {source.value} feed in {delay:.0f}s")

        error: Exception | None = None
        try:
            await collector.stop()
            await asyncio.sleep(delay)
            if self.running:
                await collector.connect()
        except (OSError, websockets.InvalidHandshake) as e:
            logger.error(f"Reconnect of {source.value} feed failed: {e}")
            error = e
        finally:
            self._reconnecting.discard(source)

        if not self.running:
            return
        if error is not None:
            self.handle_control(source, ControlSignal(f"reconnect failed: {error}", fatal=True))
            return

        await collector.start()
        if collector is self.trades:
            self.subscriptions.resubscribe()

    async def process(self, message: FeedMessage) -> None:
        if message.is_control:
            self.handle_control(message.source, message.payload)
        else:
            self._reconnect_delay.pop(message.source, None)
            if message.source is FeedSource.NOTICES:
                await self.handle_event(message.payload)
            else:
                await self.handle_trade(message.payload)
        await self.redraw()

    async def redraw(self) -> None:
        if self.sink is None:
            return

        text = render_trend_bar(self.sink.pane_width(Pane.TREND), self.trade_stats)
        if text:
            title = "Trade Trend"
            if self.subscriptions.subscriptions:
                title += f" ({' '.join(self.subscriptions.subscriptions).upper()})"
            self.sink.set_pane_text(Pane.TREND, text, title)

        try:
            momentum = await self.db.asset_momentum()
        except aiosqlite.Error as e:
            logger.error(f"Error executing momentum query: {e}")
            momentum = None
        text = render_momentum_table(self.sink.pane_width(Pane.MOMENTUM), momentum)
        if text:
            self.sink.set_pane_text(Pane.MOMENTUM, text)

    async def refresh_tickers_once(self) -> int:
        symbols = await self.db.get_recent_symbols()
        refreshed = await self.cache.refresh_tickers(symbols)
        if self.sink:
            selected = self.sink.selected_symbol()
            if selected:
                await self.render_detail(selected)
        return refreshed

    def show_detail(self, symbol: str) -> None:
        if self.sink is None:
            return
        if self.cache.cached_ticker(symbol.replace("/", "", 1)) is None:
            self.sink.set_pane_text(Pane.DETAILS, format_detail(symbol, None))
        self._spawn(self.render_detail(symbol))

    async def render_detail(self, symbol: str) -> None:
        """详情面板: 24 小时行情加 base 资产近期通知成交量占比"""
        if self.sink is None:
            return
        name = symbol.replace("/", "", 1)
        try:
            ticker = await self.cache.get_ticker(name)
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to load details for {name}: {e}")
            return
        try:
            volume_share = await self.db.asset_volume_frequency(symbol.split("/")[0])
        except aiosqlite.Error as e:
            logger.error(f"Error executing volume frequency query: {e}")
            volume_share = 0.0
        if self.sink.selected_symbol() == symbol:
            self.sink.set_pane_text(Pane.DETAILS, format_detail(symbol, ticker, volume_share))

    async def _consume(self) -> None:
        while self.running:
            message = await self.inbox.get()
            try:
                await self.process(message)
            except Exception as e:
                logger.exception(f"Failed to process {message.source.value} message: {e}")

    async def _refresh_tickers(self) -> None:
        interval = self.config.ticker_interval_seconds
        while self.running:
            await asyncio.sleep(interval)
            try:
                refreshed = await self.refresh_tickers_once()
                logger.debug(f"Refreshed {refreshed} tickers")
            except aiosqlite.Error as e:
                logger.error(f"Failed to refresh tickers: {e}")

    async def run(self) -> None:
        try:
            await self.init()
            app = TerminalApp(
                self.config,
                self.subscriptions,
                ready_callback=self.start,
                select_callback=self.show_detail,
            )
            self.sink = app
            await app.run_async(mouse=self.config.enable_mouse)
        finally:
            await self.stop()


def parse_args(args: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Binance abnormal trading notices and large trades terminal")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="配置文件路径 (默认: config.yaml)",
    )
    parser.add_argument(
        "--disable-logging",
        action="store_true",
        help="不记录原始推送消息",
    )
    return parser.parse_args(args)


async def main(config: Config) -> None:
    terminal = Terminal(config)
    await terminal.run()


def cli() -> None:
    args = parse_args()
    config = load_config(args.config)
    if args.disable_logging:
        config.disable_logging = True
    setup_logging(config)

    try:
        asyncio.run(main(config))
    except (aiosqlite.Error, OSError, websockets.InvalidHandshake) as e:
        logger.error(f"Startup failed: {e}")
        print(f"bintel: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
