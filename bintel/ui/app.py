"""
基于 Textual 的实时终端面板

布局:
- 左上: 大单热度 (momentum) 柱状图
- 右上: 选中交易对的详情
- 中间: maker/taker 比例条
- 底部: 通知与大单的实时列表

面板本身不做计算, 由消费循环通过 DashboardSink 方法推送渲染好的文本和行.
"""

from __future__ import annotations

import logging
import webbrowser
from collections import deque
from collections.abc import Callable, Coroutine
from typing import Any

from rich.text import Text
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Grid, Horizontal, Vertical
from textual.events import Resize
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Input, Label, Static

from bintel.collector.subscriptions import SubscriptionManager
from bintel.config import Config

from .formatter import FEED_COLUMNS, HELP_TEXT, MESSAGES, FeedRow
from .sink import Pane

logger = logging.getLogger(__name__)

MIN_TERM_WIDTH = 64
MIN_TERM_HEIGHT = 22
MAX_FEED_ROWS = 5000


class FeedTable(DataTable):
    """实时列表; Enter 进入选择模式, Esc 退出"""

    BINDINGS = [
        Binding("enter", "select_or_enable", "Select", show=False),
        Binding("escape", "disable_selection", "Leave selection", show=False),
        Binding("j", "cursor_down", show=False),
        Binding("k", "cursor_up", show=False),
        Binding("g", "scroll_home", show=False),
        Binding("G", "scroll_end", show=False),
    ]

    @property
    def selecting(self) -> bool:
        return self.cursor_type != "none"

    def action_select_or_enable(self) -> None:
        if not self.selecting:
            self.cursor_type = "cell"
            return
        self.action_select_cursor()

    def action_disable_selection(self) -> None:
        self.cursor_type = "none"
        self.scroll_end(animate=False)


class SubscribeScreen(ModalScreen[str | None]):
    """为 base 资产选择计价币种"""

    def __init__(self, symbol: str, quotes: list[str]) -> None:
        super().__init__()
        self.symbol = symbol
        self.quotes = quotes

    def compose(self) -> ComposeResult:
        base = self.symbol.split("/")[0]
        with Vertical(id="dialog"):
            yield Label(f"Subscribe To Trades Feed\n\nChoose Quote Asset or Close\n{base}")
            with Horizontal():
                for quote in self.quotes:
                    yield Button(quote, id=f"quote-{quote}")
                yield Button("Close", id="close", variant="error")

    def on_mount(self) -> None:
        # 默认选中与当前交易对相同的计价币种
        current = self.symbol.split("/")[1] if "/" in self.symbol else None
        if current in self.quotes:
            self.query_one(f"#quote-{current}", Button).focus()

    @on(Button.Pressed)
    def _choose(self, event: Button.Pressed) -> None:
        if event.button.id == "close":
            self.dismiss(None)
        else:
            self.dismiss(str(event.button.label))


class AssetInputScreen(ModalScreen[str | None]):
    """手动输入要订阅的 base 资产"""

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Label("Enter an asset to track")
            yield Input(value="BTC", placeholder="Base Asset", id="asset")
            with Horizontal():
                yield Button("Subscribe", id="subscribe", variant="primary")
                yield Button("Cancel", id="cancel")

    @on(Input.Submitted)
    def _submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip().upper() or None)

    @on(Button.Pressed)
    def _pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "subscribe":
            value = self.query_one("#asset", Input).value.strip().upper()
            self.dismiss(value or None)
        else:
            self.dismiss(None)

    def key_escape(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    def __init__(self, message: str) -> None:
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Label(self.message)
            with Horizontal():
                yield Button("Yes", id="yes", variant="error")
                yield Button("No", id="no")

    @on(Button.Pressed)
    def _pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "yes")

    def key_escape(self) -> None:
        self.dismiss(False)


class HelpScreen(ModalScreen[None]):
    def compose(self) -> ComposeResult:
        yield Static(HELP_TEXT, id="help")

    def on_key(self) -> None:
        self.dismiss(None)


class TerminalApp(App):
    """主面板"""

    CSS = """
    Grid {
        grid-size: 2 3;
        grid-columns: 3fr 2fr;
        grid-rows: 9 3 1fr;
    }
    .pane {
        border: round $surface-lighten-2;
        border-title-align: left;
    }
    #trend {
        column-span: 2;
        content-align: center middle;
    }
    #feed {
        column-span: 2;
        border: round $surface-lighten-2;
        border-title-align: left;
    }
    #momentum {
        content-align: center middle;
    }
    ModalScreen {
        align: center middle;
    }
    #dialog {
        width: 60;
        height: auto;
        border: thick $accent;
        padding: 1 2;
        background: $surface;
    }
    #help {
        width: 70;
        height: auto;
        border: round $accent;
        padding: 1 2;
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("backslash", "subscribe_selected", "Trades of selection"),
        Binding("slash", "subscribe_input", "Subscribe asset"),
        Binding("u", "unsubscribe_selected", "Unsubscribe"),
        Binding("U", "unsubscribe_all", "Unsubscribe all"),
        Binding("o", "open_web", "Web trade page", show=False),
        Binding("h", "help", "Help"),
        Binding("H", "help", show=False),
        Binding("ctrl+c", "quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        config: Config,
        subscriptions: SubscriptionManager,
        ready_callback: Callable[[], Coroutine[Any, Any, None]] | None = None,
        select_callback: Callable[[str], None] | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.subscriptions = subscriptions
        self.ready_callback = ready_callback
        self.select_callback = select_callback
        self._selected: str | None = None
        self._row_keys: deque[Any] = deque()
        self._row_symbols: dict[Any, str] = {}
        self._panes: dict[Pane, Static] = {}
        self._placeholder: Any = None

    def compose(self) -> ComposeResult:
        momentum = Static(MESSAGES["notenoughdata"], id="momentum", classes="pane", markup=False)
        momentum.border_title = f"Popularity ({self.config.database.sample_period_minutes} minutes)"
        details = Static(MESSAGES["details"], id="details", classes="pane", markup=False)
        details.border_title = f"Details ({self.config.ticker_interval_seconds}s)"
        trend = Static(MESSAGES["notenoughtrades"], id="trend", classes="pane")
        trend.border_title = "Trade Trend"
        self._panes = {Pane.MOMENTUM: momentum, Pane.DETAILS: details, Pane.TREND: trend}

        feed = FeedTable(id="feed", cursor_type="none", zebra_stripes=False)
        feed.border_title = "Live Feed"
        with Grid():
            yield momentum
            yield details
            yield trend
            yield feed
        yield Footer()

    async def on_mount(self) -> None:
        feed = self.query_one(FeedTable)
        feed.add_columns(*FEED_COLUMNS)
        # 第一条数据到达前的占位行
        self._placeholder = feed.add_row(MESSAGES["waitingfordata"], *[""] * (len(FEED_COLUMNS) - 1))
        feed.focus()
        self._check_size(self.size.width, self.size.height)
        if self.ready_callback:
            await self.ready_callback()

    # DashboardSink

    def append_row(self, row: FeedRow) -> None:
        feed = self.query_one(FeedTable)
        if self._placeholder is not None:
            feed.remove_row(self._placeholder)
            self._placeholder = None
        cells = [Text(cell, style=row.style) for cell in row.cells()]
        key = feed.add_row(*cells)
        self._row_keys.append(key)
        self._row_symbols[key] = row.symbol
        while len(self._row_keys) > MAX_FEED_ROWS:
            oldest = self._row_keys.popleft()
            self._row_symbols.pop(oldest, None)
            feed.remove_row(oldest)
        if not feed.selecting:
            feed.scroll_end(animate=False)

    def set_pane_text(self, pane: Pane, text: str, title: str | None = None) -> None:
        widget = self._panes[pane]
        widget.update(text)
        if title is not None:
            widget.border_title = title

    def pane_width(self, pane: Pane) -> int:
        return self._panes[pane].content_size.width

    def selected_symbol(self) -> str | None:
        return self._selected

    # Interaction

    def _cursor_symbol(self) -> str | None:
        feed = self.query_one(FeedTable)
        if not feed.selecting or feed.row_count == 0:
            return None
        row_key, _ = feed.coordinate_to_cell_key(feed.cursor_coordinate)
        return self._row_symbols.get(row_key)

    @on(DataTable.CellSelected)
    def _cell_selected(self, event: DataTable.CellSelected) -> None:
        symbol = self._row_symbols.get(event.cell_key.row_key)
        if not symbol:
            return
        self._selected = symbol
        if self.select_callback:
            self.select_callback(symbol)

    def on_resize(self, event: Resize) -> None:
        self._check_size(event.size.width, event.size.height)

    def _check_size(self, width: int, height: int) -> None:
        if width < MIN_TERM_WIDTH or height < MIN_TERM_HEIGHT:
            logger.info("Terminal too small")
            self.notify(MESSAGES["termsize"], severity="warning")

    def _subscribe(self, symbol: str) -> None:
        def done(quote: str | None) -> None:
            if quote:
                self.subscriptions.subscribe(symbol, quote)

        self.push_screen(SubscribeScreen(symbol, self.config.trades.quotes), done)

    def action_subscribe_selected(self) -> None:
        symbol = self._cursor_symbol()
        if symbol:
            self._subscribe(symbol)

    def action_subscribe_input(self) -> None:
        def done(asset: str | None) -> None:
            if asset:
                self._subscribe(asset)

        self.push_screen(AssetInputScreen(), done)

    def action_unsubscribe_selected(self) -> None:
        symbol = self._cursor_symbol()
        if not symbol:
            return

        def done(confirmed: bool | None) -> None:
            if confirmed:
                self.subscriptions.unsubscribe(symbol)

        self.push_screen(ConfirmScreen(f"Unsubscribe {symbol} from trades feed?"), done)

    def action_unsubscribe_all(self) -> None:
        def done(confirmed: bool | None) -> None:
            if confirmed:
                self.subscriptions.unsubscribe_all()

        self.push_screen(ConfirmScreen("Unsubscribe all pairs from trades feed?"), done)

    def action_open_web(self) -> None:
        symbol = self._cursor_symbol()
        if symbol:
            webbrowser.open(self.config.binance_terminal + symbol.replace("/", "_", 1))

    def action_help(self) -> None:
        self.push_screen(HelpScreen())
