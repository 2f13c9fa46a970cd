# tests/storage/test_database.py
import time

import pytest

from bintel.storage.database import Database
from bintel.storage.models import NoticeEvent, Trade

HOUR_MS = 60 * 60 * 1000


@pytest.fixture
async def db(tmp_path):
    db_path = tmp_path / "test.db"
    database = Database(str(db_path))
    await database.init()
    yield database
    await database.close()


def _event(
    base: str = "BTC",
    volume: float = 1.0,
    notice_type: str = "BLOCK_TRADE",
    quote: str = "USDT",
) -> NoticeEvent:
    return NoticeEvent(
        event_type="BLOCK_TRADES_BUY",
        notice_type=notice_type,
        symbol=base + quote,
        base_asset=base,
        quote_asset=quote,
        volume=volume,
        price_change=0.01,
        period="MINUTE_5",
        send_timestamp=int(time.time() * 1000),
    )


def _trade(symbol: str = "ETHBTC") -> Trade:
    now = int(time.time() * 1000)
    return Trade(
        event_type="aggTrade",
        symbol=symbol,
        quantity=30.0,
        price=0.05,
        event_timestamp=now,
        trade_timestamp=now,
        trade_id=12345,
        is_maker=True,
    )


async def test_insert_event_and_trade(db: Database):
    await db.insert_event(_event())
    await db.insert_trade(_trade(), "ETH", "BTC")

    assert await db.count_rows("events") == 1
    assert await db.count_rows("trades") == 1


async def test_count_rows_rejects_unknown_table(db: Database):
    with pytest.raises(ValueError):
        await db.count_rows("sqlite_master")


async def test_rotate_prunes_old_rows(db: Database):
    now = int(time.time() * 1000)
    await db.insert_event(_event(), timestamp=now - 2 * HOUR_MS)
    await db.insert_event(_event())
    await db.insert_trade(_trade(), "ETH", "BTC", timestamp=now - 2 * HOUR_MS)

    deleted = await db.rotate()

    assert deleted == {"events": 1, "trades": 1}
    assert await db.count_rows("events") == 1
    assert await db.count_rows("trades") == 0


async def test_init_rotates_existing_database(tmp_path):
    db_path = str(tmp_path / "test.db")
    first = Database(db_path)
    await first.init()
    await first.insert_event(_event(), timestamp=int(time.time() * 1000) - 2 * HOUR_MS)
    await first.insert_event(_event())
    await first.close()

    second = Database(db_path)
    await second.init()
    try:
        assert await second.count_rows("events") == 1
    finally:
        await second.close()


async def test_in_memory_database():
    database = Database("unused.db", in_memory=True)
    await database.init()
    try:
        await database.insert_event(_event())
        assert await database.count_rows("events") == 1
    finally:
        await database.close()


async def test_get_recent_symbols(db: Database):
    now = int(time.time() * 1000)
    await db.insert_event(_event(base="BTC"))
    await db.insert_event(_event(base="OLD"), timestamp=now - 30 * 60 * 1000)
    await db.insert_trade(_trade("ETHBTC"), "ETH", "BTC")
    await db.insert_trade(_trade("ETHBTC"), "ETH", "BTC")

    symbols = await db.get_recent_symbols()

    assert symbols == ["BTCUSDT", "ETHBTC"]


async def test_asset_momentum_ranks_block_trades(db: Database):
    for volume in (1.0, 2.0, 3.0):
        await db.insert_event(_event(base="BTC", volume=volume))
    for volume in (1.0, 2.0, 3.0, 4.0):
        await db.insert_event(_event(base="ETH", volume=volume))
    # 行数不足
    for volume in (1.0, 2.0):
        await db.insert_event(_event(base="DOGE", volume=volume))
    # 非 BLOCK_TRADE 事件不参与排行
    for volume in (5.0, 6.0, 7.0, 8.0):
        await db.insert_event(_event(base="BNB", volume=volume, notice_type="PRICE_CHANGE"))

    stats = await db.asset_momentum()

    assert [s.name for s in stats] == ["ETH", "BTC"]
    assert stats[0].momentum == pytest.approx(16.0)
    assert stats[1].momentum == pytest.approx(9.0)
    assert stats[0].avg_volume == pytest.approx(2.5)
    assert stats[1].avg_volume == pytest.approx(2.0)


async def test_asset_momentum_empty(db: Database):
    assert await db.asset_momentum() == []


async def test_asset_avg_volume(db: Database):
    assert await db.asset_avg_volume("BTC") == 0.0

    await db.insert_event(_event(base="BTC", volume=2.0))
    await db.insert_event(_event(base="BTC", volume=4.0))

    assert await db.asset_avg_volume("BTC") == pytest.approx(3.0)


async def test_asset_volume_frequency(db: Database):
    now = int(time.time() * 1000)
    for _ in range(8):
        await db.insert_event(_event(base="BTC", volume=1.0), timestamp=now - 30 * 60 * 1000)
    for _ in range(3):
        await db.insert_event(_event(base="BTC", volume=1.0))

    # 3 / 11
    assert await db.asset_volume_frequency("BTC") == pytest.approx(3 / 11)
    assert await db.asset_volume_frequency("ETH") == 0.0
