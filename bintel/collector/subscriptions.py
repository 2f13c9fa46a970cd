# bintel/collector/subscriptions.py
import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

STREAM_SUFFIX = "@aggTrade"


class Intent(Enum):
    SUBSCRIBE = "Subscribe"
    UNSUBSCRIBE = "Unsubscribe"
    UNSUBSCRIBE_ALL = "UnsubscribeAll"
    RESUBSCRIBE = "Resubscribe"


@dataclass(frozen=True)
class SubscriptionRequest:
    intent: Intent
    stream_name: str  # 交易对, 如 BTCUSDT


def stream_for(pair: str) -> str:
    return pair.lower() + STREAM_SUFFIX


class SubscriptionManager:
    """
    订阅集合的唯一持有者

    UI 通过 subscribe / unsubscribe / unsubscribe_all 投递意图,
    由单个发送任务按顺序转换为 SUBSCRIBE / UNSUBSCRIBE 请求并写入连接.
    """

    def __init__(
        self,
        send: Callable[[dict[str, Any]], Coroutine[Any, Any, None]],
        log_requests: bool = True,
    ):
        self._send = send
        self.log_requests = log_requests
        self.queue: asyncio.Queue[SubscriptionRequest] = asyncio.Queue()
        self.subscriptions: list[str] = []
        self._next_id = 1
        self._task: asyncio.Task[None] | None = None

    def subscribe(self, symbol: str, quote: str) -> None:
        """symbol 可以是 "BTC" 或 "BTC/ETH", 只取 base 部分"""
        pair = (symbol.split("/")[0] + quote).upper()
        self.queue.put_nowait(SubscriptionRequest(Intent.SUBSCRIBE, pair))

    def unsubscribe(self, symbol: str) -> None:
        pair = symbol.replace("/", "").upper()
        self.queue.put_nowait(SubscriptionRequest(Intent.UNSUBSCRIBE, pair))

    def unsubscribe_all(self) -> None:
        self.queue.put_nowait(SubscriptionRequest(Intent.UNSUBSCRIBE_ALL, "All"))

    def resubscribe(self) -> None:
        """重连后恢复全部订阅"""
        self.queue.put_nowait(SubscriptionRequest(Intent.RESUBSCRIBE, "All"))

    def _frame(self, method: str, params: list[str]) -> dict[str, Any]:
        frame = {"method": method, "params": params, "id": self._next_id}
        self._next_id += 1
        return frame

    def _apply(self, request: SubscriptionRequest) -> dict[str, Any] | None:
        if not request.stream_name:
            return None

        if request.intent is Intent.SUBSCRIBE:
            if request.stream_name not in self.subscriptions:
                self.subscriptions.append(request.stream_name)
            return self._frame("SUBSCRIBE", [stream_for(request.stream_name)])

        if request.intent is Intent.UNSUBSCRIBE:
            if request.stream_name not in self.subscriptions:
                return None
            self.subscriptions.remove(request.stream_name)
            return self._frame("UNSUBSCRIBE", [stream_for(request.stream_name)])

        if request.intent is Intent.UNSUBSCRIBE_ALL:
            if not self.subscriptions:
                return None
            params = [stream_for(pair) for pair in self.subscriptions]
            self.subscriptions = []
            return self._frame("UNSUBSCRIBE", params)

        if request.intent is Intent.RESUBSCRIBE:
            if not self.subscriptions:
                return None
            return self._frame("SUBSCRIBE", [stream_for(pair) for pair in self.subscriptions])

        return None

    async def _run(self) -> None:
        while True:
            request = await self.queue.get()
            try:
                frame = self._apply(request)
                if frame is None:
                    continue
                if self.log_requests:
                    logger.info(f"Subscription request: {frame}")
                await self._send(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to send subscription request {request}: {e}")
            finally:
                self.queue.task_done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
