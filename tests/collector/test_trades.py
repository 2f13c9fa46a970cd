# tests/collector/test_trades.py
import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
import websockets

from bintel.collector.base import FeedMessage, FeedSource
from bintel.collector.trades import TradesCollector, is_acknowledgment
from bintel.storage.models import Trade


def _trade_frame(**overrides) -> dict:
    data = {
        "e": "aggTrade",
        "E": 1704067200123,
        "s": "BNBBTC",
        "a": 26129,
        "p": "0.01633102",
        "q": "4.70443515",
        "f": 27781,
        "l": 27781,
        "T": 1704067200100,
        "m": True,
        "M": True,
    }
    data.update(overrides)
    return {"stream": "bnbbtc@aggTrade", "data": data}


@pytest.fixture
def inbox() -> "asyncio.Queue[FeedMessage]":
    return asyncio.Queue()


def test_is_acknowledgment():
    assert is_acknowledgment({"result": None, "id": 3})
    assert not is_acknowledgment({"result": None, "id": 0})
    # aggregate trade id 不是请求 id
    assert not is_acknowledgment(_trade_frame(a=99))


async def test_process_message_emits_trade(inbox):
    collector = TradesCollector(inbox, log_messages=False)

    await collector._process_message(json.dumps(_trade_frame()))

    message = inbox.get_nowait()
    assert message.source is FeedSource.TRADES
    trade = message.payload
    assert isinstance(trade, Trade)
    assert trade.symbol == "BNBBTC"
    assert trade.price == 0.01633102
    assert trade.quantity == 4.70443515
    assert trade.trade_id == 26129
    assert trade.trade_timestamp == 1704067200100
    assert trade.is_maker is True


async def test_process_message_drops_acknowledgments(inbox):
    collector = TradesCollector(inbox, log_messages=False)

    await collector._process_message(json.dumps({"result": None, "id": 1}))
    # 带请求 id 的帧即使包含成交数据也不转发
    frame = _trade_frame()
    frame["id"] = 7
    await collector._process_message(json.dumps(frame))

    assert inbox.empty()


async def test_process_message_drops_malformed_frames(inbox):
    collector = TradesCollector(inbox, log_messages=False)

    await collector._process_message("{broken")
    await collector._process_message(json.dumps(_trade_frame(p="abc")))
    await collector._process_message(json.dumps(_trade_frame(e="trade")))
    await collector._process_message(json.dumps([1, 2, 3]))

    assert inbox.empty()


async def test_process_message_drops_invalid_utf8(inbox):
    collector = TradesCollector(inbox, log_messages=False)

    await collector._process_message(b"\xff\xfe{")

    assert inbox.empty()


async def test_run_treats_undecodable_frame_as_dropped(inbox):
    collector = TradesCollector(inbox, log_messages=False, error_delay=0)
    collector.ws = MagicMock()
    collector.ws.recv = AsyncMock(side_effect=[b"\xff\xfe{", websockets.ConnectionClosed(None, None)])
    collector.running = True

    await collector._run()

    # 只有连接关闭的信号, 解码失败不产生控制消息
    assert inbox.qsize() == 1
    message = inbox.get_nowait()
    assert message.is_control and message.payload.fatal is True


async def test_process_message_mirrors_raw_frames(inbox, caplog):
    caplog.set_level(logging.INFO, logger="bintel.collector.trades")
    collector = TradesCollector(inbox, log_messages=True)
    frame = json.dumps(_trade_frame())

    await collector._process_message(frame)

    assert any(record.levelno == logging.INFO and record.getMessage() == frame for record in caplog.records)


async def test_send_serializes_payload(inbox):
    collector = TradesCollector(inbox, log_messages=False)
    collector.ws = MagicMock()
    collector.ws.send = AsyncMock()

    await collector.send({"method": "SUBSCRIBE", "params": ["btcusdt@aggTrade"], "id": 1})

    sent = json.loads(collector.ws.send.call_args[0][0])
    assert sent == {"method": "SUBSCRIBE", "params": ["btcusdt@aggTrade"], "id": 1}


async def test_send_without_connection_raises(inbox):
    collector = TradesCollector(inbox, log_messages=False)

    with pytest.raises(RuntimeError):
        await collector.send({"method": "SUBSCRIBE", "params": [], "id": 1})


async def test_run_continues_after_receive_error(inbox):
    collector = TradesCollector(inbox, log_messages=False, error_delay=0)
    collector.ws = MagicMock()
    collector.ws.recv = AsyncMock(
        side_effect=[
            RuntimeError("glitch"),
            json.dumps(_trade_frame()),
            websockets.ConnectionClosed(None, None),
        ]
    )
    collector.running = True

    await collector._run()

    messages = [inbox.get_nowait() for _ in range(inbox.qsize())]
    assert len(messages) == 3
    assert messages[0].is_control and messages[0].payload.fatal is False
    assert isinstance(messages[1].payload, Trade)
    assert messages[2].is_control and messages[2].payload.fatal is True
