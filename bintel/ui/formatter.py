# bintel/ui/formatter.py
"""
面板文本渲染

这里全部是纯函数: 消费循环生成字符串和行, Textual 界面只负责显示.
"""

import math
from dataclasses import dataclass

from bintel.aggregator.trade_stats import MIN_TREND_SAMPLES, RollingTradeStats
from bintel.client.models import SymbolInfo, Ticker
from bintel.storage.models import AssetStat, NoticeEvent, Trade

MESSAGES = {
    "details": (
        "Enter: Enable Selection\n"
        "Enter: Again to show detail\n"
        "Esc:  Disable Selection\n"
        "\\:    Get Trades of Selection\n"
        "/:    Input Asset to Subscribe\n"
        "Ctrl-C: Exit"
    ),
    "notenoughdata": "Not enough Buy/Sell data",
    "notenoughtrades": "Not enough trades, subscribe to pairs",
    "notenoughevents": "Not enough events",
    "nomomentum": "No enough data",
    "termsize": "Too small terminal ...",
    "waitingfordata": "Waiting for live data ...",
}

HELP_TEXT = """Key shortcuts:
Navigate the live feed table using the arrow keys or j/k
PgUp / PgDown: Scroll by one page
g / G: Go to top / bottom of table
Enter: Enter selection mode, again to show details of the symbol
\\: In selection mode, subscribe symbol to trades feed
o: In selection mode, launch web trade page
u: In selection mode, unsubscribe pair from trades feed
U: Unsubscribe all pairs from trades feed
/: Input an asset to subscribe to the trades feed
Esc: Exit selection mode
h, H: Display this help
Ctrl-C: Quit
"""

PERIODS = {
    "DAY_1": "24H",
    "WEEK_1": "7D",
    "MONTH_1": "1M",
    "HOUR_2": "2h",
    "MINUTE_15": "15m",
    "MINUTE_5": "5m",
}

GREEN = "green"
RED = "red"

# (notice_type, event_type) -> (label, style)
EVENT_LABELS: dict[tuple[str, str], tuple[str, str]] = {
    ("PRICE_CHANGE", "UP_1"): ("Price Change", GREEN),
    ("PRICE_CHANGE", "DOWN_1"): ("Price Change", RED),
    ("PRICE_CHANGE", "UP_2"): ("Price Change", f"underline {GREEN}"),
    ("PRICE_CHANGE", "DOWN_2"): ("Price Change", f"underline {RED}"),
    ("PRICE_CHANGE", "UP_3"): ("Price Change", f"bold {GREEN}"),
    ("PRICE_CHANGE", "DOWN_3"): ("Price Change", f"bold {RED}"),
    ("PRICE_BREAKTHROUGH", "UP_BREAKTHROUGH"): ("Price High", GREEN),
    ("PRICE_BREAKTHROUGH", "DOWN_BREAKTHROUGH"): ("Price Low", RED),
    ("VOLUME_PRICE", "HIGH_VOLUME_DROP_1"): ("Large Volume Fall", f"underline {RED}"),
    ("VOLUME_PRICE", "HIGH_VOLUME_RISE_1"): ("Large Volume Rise", f"underline {GREEN}"),
    ("VOLUME_PRICE", "HIGH_VOLUME_DROP_2"): ("Large Volume Fall", f"bold {RED}"),
    ("VOLUME_PRICE", "HIGH_VOLUME_RISE_2"): ("Large Volume Rise", f"bold {GREEN}"),
    ("VOLUME_PRICE", "HIGH_VOLUME_DROP_3"): ("Large Volume Fall", f"bold underline {RED}"),
    ("VOLUME_PRICE", "HIGH_VOLUME_RISE_3"): ("Large Volume Rise", f"bold underline {GREEN}"),
    ("BLOCK_TRADE", "BLOCK_TRADES_SELL"): ("Large Sell", RED),
    ("BLOCK_TRADE", "BLOCK_TRADES_BUY"): ("Large Buy", GREEN),
}

FEED_COLUMNS = ("Event", "Period", "Symbol", "Amount", "Percent", "24H Change", "Price")

MOMENTUM_VOLUME_MIN_WIDTH = 42


@dataclass(frozen=True)
class FeedRow:
    notice: str
    period: str
    symbol: str  # BASE/QUOTE, 可选中
    amount: str
    percent: str
    change: str
    price: str
    style: str

    def cells(self) -> tuple[str, ...]:
        return (
            self.notice,
            self.period,
            self.symbol,
            self.amount,
            self.percent,
            self.change,
            self.price,
        )


def format_number(value: float) -> str:
    """最短的精确表示, 去掉末尾的 .0"""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _change(ticker: Ticker | None) -> str:
    return f"{ticker.price_change_percent if ticker else 0:.2f} %"


def format_event_row(event: NoticeEvent, ticker: Ticker | None) -> FeedRow | None:
    label = EVENT_LABELS.get((event.notice_type, event.event_type))
    if event.notice_type == "PRICE_CHANGE" and label is None:
        label = ("Price Change", "")
    if label is None:
        return None
    notice, style = label

    amount = ""
    percent = ""
    if event.notice_type in ("PRICE_CHANGE", "PRICE_BREAKTHROUGH"):
        percent = f"{event.price_change * 100:.2f}%"
    elif event.notice_type == "VOLUME_PRICE":
        amount = f"{event.volume:.2f}"
        percent = f"{event.price_change * 100:.2f}"
    elif event.notice_type == "BLOCK_TRADE":
        amount = f"{event.volume:.2f}"

    return FeedRow(
        notice=notice,
        period=PERIODS.get(event.period, ""),
        symbol=f"{event.base_asset}/{event.quote_asset}",
        amount=amount,
        percent=percent,
        change=_change(ticker),
        price=format_number(ticker.last_price) if ticker else "",
        style=style,
    )


def format_trade_row(trade: Trade, info: SymbolInfo, ticker: Ticker | None) -> FeedRow | None:
    if trade.event_type != "aggTrade":
        return None
    if trade.is_maker:
        notice, style = "Large Maker", "yellow"
    else:
        notice, style = "Large Taker", "blue"
    return FeedRow(
        notice=notice,
        period="",
        symbol=f"{info.base_asset}/{info.quote_asset}",
        amount=f"{trade.quantity:.2f}",
        percent="",
        change=_change(ticker),
        price=f"{trade.price:.2f}",
        style=style,
    )


def format_detail(symbol: str, ticker: Ticker | None, volume_share: float = 0.0) -> str:
    """volume_share: 采样窗口内通知成交量占保留窗口的比例, 0 表示数据不足"""
    name = symbol.replace("/", "", 1)
    if ticker is None:
        return f"Symbol: {name}\nWaiting for ticker ..."
    text = (
        f"Symbol: {name}\n"
        f"Price: {format_number(ticker.last_price)}\n"
        f"24H Change: {ticker.price_change_percent:.2f}%\n"
        f"Volume: {format_number(ticker.volume)}\n"
        f"Daily High: {format_number(ticker.high_price)}\n"
        f"Daily Low: {format_number(ticker.low_price)}"
    )
    if volume_share > 0:
        text += f"\nRecent Volume: {volume_share * 100:.1f}%"
    return text


def render_trend_bar(width: int, stats: RollingTradeStats) -> str:
    """
    Maker/Taker 比例条

    返回空字符串表示没有可显示的内容, 调用方不应覆盖现有文本.
    """
    if not stats.has_data or width <= 3:
        return ""
    if stats.count < MIN_TREND_SAMPLES:
        return MESSAGES["notenoughevents"]

    ratio = stats.maker / (stats.maker + stats.taker)
    count = math.floor(width * ratio)

    # 为百分比文字预留位置, 两端至少保留一格
    left_padding, right_padding = 1, 2
    if count == 0:
        left_padding, right_padding = 0, 4
    elif count == width:
        left_padding, right_padding = 4, 0

    green = "▓" * max(count - left_padding, 0)
    red = "▓" * max(width - count - right_padding, 0)
    return f"[green]{green}[/green][white]{ratio * 100:.0f}%[/white][red]{red}[/red]"


def render_momentum_table(width: int, stats: list[AssetStat] | None) -> str:
    if stats is None:
        return MESSAGES["nomomentum"]
    if not stats:
        return ""

    max_momentum = max(asset.momentum for asset in stats)
    max_name_len = max(len(asset.name) for asset in stats)
    if max_momentum <= 0:
        return ""

    show_volume = width > MOMENTUM_VOLUME_MIN_WIDTH
    lines: list[str] = []
    for asset in stats:
        padding = 3 + max_name_len
        volume = ""
        if show_volume:
            padding += 8
            if asset.avg_volume >= 10000:
                volume = f" {asset.avg_volume:8.2E}"
            else:
                volume = f" {asset.avg_volume:8.2f}"

        bar_width = int(asset.momentum / max_momentum * width)
        if bar_width < padding:
            continue
        if bar_width == padding:
            bar_width += 1

        bar = "▱" * (bar_width - padding)
        left_line = " " * (max_name_len - len(asset.name)) + "│"
        right_align = ""
        if show_volume:
            right_align = " " * max(width - len(asset.name + left_line + bar + volume), 0)
        lines.append(asset.name + left_line + bar + right_align + volume)

    return "\n".join(lines)
