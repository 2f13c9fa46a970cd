# bintel/collector/base.py
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class FeedSource(Enum):
    NOTICES = "notices"
    TRADES = "trades"


@dataclass(frozen=True)
class ControlSignal:
    reason: str
    fatal: bool  # 连接已断开, 接收循环已退出


@dataclass(frozen=True)
class FeedMessage:
    source: FeedSource
    payload: Any  # NoticeEvent / Trade / ControlSignal

    @property
    def is_control(self) -> bool:
        return isinstance(self.payload, ControlSignal)


class BaseCollector(ABC):
    source: FeedSource

    def __init__(self, name: str, inbox: "asyncio.Queue[FeedMessage]"):
        self.name = name
        self.inbox = inbox
        self.running = False
        self._task: asyncio.Task[None] | None = None

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def _process_message(self, message: Any) -> None:
        pass

    async def _emit(self, payload: Any) -> None:
        await self.inbox.put(FeedMessage(self.source, payload))

    async def _signal(self, reason: str, fatal: bool) -> None:
        await self._emit(ControlSignal(reason=reason, fatal=fatal))

    async def start(self) -> None:
        self.running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"{self.__class__.__name__} started for {self.name}")

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.disconnect()
        logger.info(f"{self.__class__.__name__} stopped for {self.name}")

    @abstractmethod
    async def _run(self) -> None:
        pass
