# bintel/collector/notices.py
import asyncio
import json
import logging
from typing import Any

import websockets

from bintel.storage.models import NOTICE_TYPES, NoticeEvent

from .base import BaseCollector, FeedMessage, FeedSource

logger = logging.getLogger(__name__)

# 未公开的异常交易通知推送
NOTICES_WS = "wss://bstream.binance.com:9443/stream?streams=abnormaltradingnotices"


class NoticeCollector(BaseCollector):
    source = FeedSource.NOTICES

    def __init__(
        self,
        inbox: "asyncio.Queue[FeedMessage]",
        url: str = NOTICES_WS,
        log_messages: bool = True,
    ):
        super().__init__("abnormaltradingnotices", inbox)
        self.url = url
        self.log_messages = log_messages
        self.ws: Any = None

    async def connect(self) -> None:
        self.ws = await websockets.connect(self.url)

    async def disconnect(self) -> None:
        if self.ws:
            await self.ws.close()
            self.ws = None

    def _parse_event(self, message: dict[str, Any]) -> NoticeEvent | None:
        data = message.get("data")
        if not isinstance(data, dict):
            return None
        if data.get("noticeType") not in NOTICE_TYPES:
            return None

        return NoticeEvent(
            event_type=data.get("eventType", ""),
            notice_type=data["noticeType"],
            symbol=data.get("symbol", ""),
            base_asset=data.get("baseAsset", ""),
            # 交易所字段名拼写为 quotaAsset
            quote_asset=data.get("quotaAsset", data.get("quoteAsset", "")),
            volume=float(data.get("volume") or 0),
            price_change=float(data.get("priceChange") or 0),
            period=data.get("period", ""),
            send_timestamp=int(data.get("sendTimestamp") or 0),
        )

    async def _process_message(self, message: str) -> None:
        if self.log_messages:
            logger.info(message)
        try:
            event = self._parse_event(json.loads(message))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse notice message: {e}: {message!r}")
            return
        if event:
            await self._emit(event)

    async def _run(self) -> None:
        try:
            if self.ws is None:
                await self.connect()
        except (OSError, websockets.InvalidHandshake) as e:
            logger.error(f"Unable to open notices websocket: {e}")
            await self._signal(f"connect failed: {e}", fatal=True)
            return

        while self.running:
            try:
                message = await self.ws.recv()
                await self._process_message(message)
            except asyncio.CancelledError:
                break
            except websockets.ConnectionClosed as e:
                logger.warning(f"Notices websocket closed: {e}")
                await self._signal(f"closed: {e}", fatal=True)
                break
            except Exception as e:
                logger.error(f"Error receiving notice message: {e}")
                await self._signal(f"receive error: {e}", fatal=True)
                break
