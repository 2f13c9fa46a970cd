# bintel/ui/sink.py
from enum import Enum
from typing import Protocol

from .formatter import FeedRow


class Pane(Enum):
    MOMENTUM = "momentum"
    DETAILS = "details"
    TREND = "trend"


class DashboardSink(Protocol):
    """消费循环与界面之间唯一的接口"""

    def append_row(self, row: FeedRow) -> None: ...

    def set_pane_text(self, pane: Pane, text: str, title: str | None = None) -> None: ...

    def pane_width(self, pane: Pane) -> int: ...

    def selected_symbol(self) -> str | None: ...
