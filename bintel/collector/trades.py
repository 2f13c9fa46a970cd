# bintel/collector/trades.py
import asyncio
import json
import logging
from typing import Any

import websockets

from bintel.storage.models import Trade

from .base import BaseCollector, FeedMessage, FeedSource

logger = logging.getLogger(__name__)

# 组合流入口, 连接时不带任何 stream, 之后通过 SUBSCRIBE 请求订阅
TRADES_WS = "wss://stream.binance.com:9443/stream?streams="


def is_acknowledgment(message: dict[str, Any]) -> bool:
    """请求回执形如 {"result": null, "id": 3}; 成交的 aggregate id 在 data.a 中"""
    return bool(message.get("id"))


class TradesCollector(BaseCollector):
    source = FeedSource.TRADES

    def __init__(
        self,
        inbox: "asyncio.Queue[FeedMessage]",
        url: str = TRADES_WS,
        log_messages: bool = True,
        error_delay: float = 1.0,
    ):
        super().__init__("aggTrade", inbox)
        self.url = url
        self.log_messages = log_messages
        self.error_delay = error_delay
        self.ws: Any = None

    async def connect(self) -> None:
        self.ws = await websockets.connect(self.url)

    async def disconnect(self) -> None:
        if self.ws:
            await self.ws.close()
            self.ws = None

    async def send(self, payload: dict[str, Any]) -> None:
        if self.ws is None:
            raise RuntimeError("Trades websocket is not connected")
        await self.ws.send(json.dumps(payload))

    def _parse_trade(self, message: dict[str, Any]) -> Trade | None:
        data = message.get("data")
        if not isinstance(data, dict) or data.get("e") != "aggTrade":
            return None

        return Trade(
            event_type=data["e"],
            symbol=data["s"],
            quantity=float(data["q"]),
            price=float(data["p"]),
            event_timestamp=int(data.get("E", 0)),
            trade_timestamp=int(data.get("T", 0)),
            trade_id=int(data.get("a", 0)),
            # m=True: 买方是 maker
            is_maker=bool(data.get("m", False)),
        )

    async def _process_message(self, message: str | bytes) -> None:
        if self.log_messages:
            logger.info(message)
        try:
            data = json.loads(message)
        except ValueError:
            # 包括非 UTF-8 的二进制帧
            logger.warning(f"Failed to parse trades message: {message!r}")
            return
        if not isinstance(data, dict):
            return

        if is_acknowledgment(data):
            logger.debug(f"Subscription acknowledged: {data}")
            return

        try:
            trade = self._parse_trade(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed trade frame ({e}): {data}")
            return
        if trade:
            await self._emit(trade)

    async def _run(self) -> None:
        if self.ws is None:
            try:
                await self.connect()
            except (OSError, websockets.InvalidHandshake) as e:
                logger.error(f"Unable to open trades websocket: {e}")
                await self._signal(f"connect failed: {e}", fatal=True)
                return

        while self.running:
            try:
                message = await self.ws.recv()
                await self._process_message(message)
            except asyncio.CancelledError:
                break
            except websockets.ConnectionClosed as e:
                logger.warning(f"End of trades stream: {e}")
                await self._signal(f"closed: {e}", fatal=True)
                break
            except Exception as e:
                # 单帧错误不影响整个面板
                logger.error(f"Error receiving trades message: {e}")
                await self._signal(f"receive error: {e}", fatal=False)
                await asyncio.sleep(self.error_delay)
