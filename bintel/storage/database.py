# bintel/storage/database.py
import logging
import time
from pathlib import Path

import aiosqlite

from .models import AssetStat, NoticeEvent, Trade

logger = logging.getLogger(__name__)

MOMENTUM_LIMIT = 7
MOMENTUM_MIN_ROWS = 5
VOLUME_FREQUENCY_MIN_ROWS = 10


def _now_ms() -> int:
    return int(time.time() * 1000)


class Database:
    def __init__(
        self,
        path: str,
        retention_minutes: int = 60,
        sample_period_minutes: int = 10,
        in_memory: bool = False,
    ):
        self.path = path
        self.retention_minutes = retention_minutes
        self.sample_period_minutes = sample_period_minutes
        self.in_memory = in_memory
        self.conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        if self.in_memory:
            logger.info("Initializing in-memory database")
            self.conn = await aiosqlite.connect(":memory:")
        else:
            existed = Path(self.path).exists()
            logger.info(f"{'Rotating' if existed else 'Initializing'} database {self.path}")
            self.conn = await aiosqlite.connect(self.path)
        await self._create_tables()
        deleted = await self.rotate()
        if any(deleted.values()):
            logger.info(f"Pruned rows older than {self.retention_minutes} minutes: {deleted}")
        await self.conn.execute("VACUUM")

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def _create_tables(self) -> None:
        assert self.conn is not None
        await self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS events (
                timestamp INTEGER NOT NULL,
                eventtype TEXT,
                noticetype TEXT,
                symbol TEXT,
                baseasset TEXT,
                quoteasset TEXT,
                volume REAL,
                pricechange REAL,
                period TEXT,
                sendtimestamp INTEGER
            );
            CREATE INDEX IF NOT EXISTS idx_events_time ON events(timestamp);
            CREATE INDEX IF NOT EXISTS idx_events_base ON events(baseasset, noticetype);

            CREATE TABLE IF NOT EXISTS trades (
                timestamp INTEGER NOT NULL,
                eventtype TEXT,
                symbol TEXT,
                quoteasset TEXT,
                baseasset TEXT,
                quantity REAL,
                price REAL,
                tradetimestamp INTEGER,
                ismaker INTEGER
            );
            CREATE INDEX IF NOT EXISTS idx_trades_time ON trades(timestamp);
        """)
        await self.conn.commit()

    def _cutoff(self, minutes: int) -> int:
        return _now_ms() - minutes * 60 * 1000

    async def rotate(self) -> dict[str, int]:
        """删除保留窗口之外的数据"""
        assert self.conn is not None
        cutoff = self._cutoff(self.retention_minutes)
        deleted: dict[str, int] = {}
        for table in ("events", "trades"):
            cursor = await self.conn.execute(f"DELETE FROM {table} WHERE timestamp < ?", (cutoff,))
            deleted[table] = cursor.rowcount
        await self.conn.commit()
        return deleted

    async def insert_event(self, event: NoticeEvent, timestamp: int | None = None) -> None:
        assert self.conn is not None
        await self.conn.execute(
            """INSERT INTO events
               (timestamp, eventtype, noticetype, symbol, baseasset, quoteasset,
                volume, pricechange, period, sendtimestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                timestamp if timestamp is not None else _now_ms(),
                event.event_type,
                event.notice_type,
                event.symbol,
                event.base_asset,
                event.quote_asset,
                event.volume,
                event.price_change,
                event.period,
                event.send_timestamp,
            ),
        )
        await self.conn.commit()

    async def insert_trade(
        self,
        trade: Trade,
        base_asset: str,
        quote_asset: str,
        timestamp: int | None = None,
    ) -> None:
        assert self.conn is not None
        await self.conn.execute(
            """INSERT INTO trades
               (timestamp, eventtype, symbol, quoteasset, baseasset,
                quantity, price, tradetimestamp, ismaker)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                timestamp if timestamp is not None else _now_ms(),
                trade.event_type,
                trade.symbol,
                quote_asset,
                base_asset,
                trade.quantity,
                trade.price,
                trade.trade_timestamp,
                int(trade.is_maker),
            ),
        )
        await self.conn.commit()

    async def count_rows(self, table: str) -> int:
        assert self.conn is not None
        if table not in ("events", "trades"):
            raise ValueError(f"Invalid table: {table}")
        cursor = await self.conn.execute(f"SELECT count(*) FROM {table}")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_recent_symbols(self) -> list[str]:
        """采样窗口内出现过的交易对"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT DISTINCT symbol FROM
                   (SELECT symbol, timestamp FROM events
                    UNION SELECT symbol, timestamp FROM trades)
               WHERE timestamp >= ? ORDER BY symbol""",
            (self._cutoff(self.sample_period_minutes),),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows if row[0]]

    async def asset_avg_volume(self, base_asset: str) -> float:
        assert self.conn is not None
        cursor = await self.conn.execute(
            "SELECT avg(volume) FROM events WHERE baseasset = ? AND timestamp >= ?",
            (base_asset, self._cutoff(self.retention_minutes)),
        )
        row = await cursor.fetchone()
        if not row or row[0] is None:
            return 0.0
        return float(row[0])

    async def asset_volume_frequency(self, base_asset: str) -> float:
        """采样窗口成交量 / 保留窗口成交量"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT
                   (SELECT sum(volume) FROM events
                    WHERE baseasset = ? AND timestamp >= ?)
                   /
                   (SELECT sum(volume) FROM events
                    WHERE baseasset = ? AND timestamp >= ?
                    GROUP BY baseasset HAVING count(*) > ?)""",
            (
                base_asset,
                self._cutoff(self.sample_period_minutes),
                base_asset,
                self._cutoff(self.retention_minutes),
                VOLUME_FREQUENCY_MIN_ROWS,
            ),
        )
        row = await cursor.fetchone()
        if not row or row[0] is None:
            return 0.0
        return float(row[0])

    async def asset_momentum(self) -> list[AssetStat]:
        """大单 (BLOCK_TRADE) 热度排行"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT h.baseasset,
                      count(t.baseasset) * (sum(DISTINCT t.volume) / sum(DISTINCT h.volume))
                          AS momentum
               FROM events AS h CROSS JOIN events AS t ON h.baseasset = t.baseasset
               WHERE h.timestamp >= ? AND t.timestamp >= ?
                 AND t.noticetype = 'BLOCK_TRADE' AND h.noticetype = 'BLOCK_TRADE'
               GROUP BY h.baseasset HAVING count(*) > ?
               ORDER BY momentum DESC LIMIT ?""",
            (
                self._cutoff(self.retention_minutes),
                self._cutoff(self.sample_period_minutes),
                MOMENTUM_MIN_ROWS,
                MOMENTUM_LIMIT,
            ),
        )
        rows = await cursor.fetchall()
        stats: list[AssetStat] = []
        for name, momentum in rows:
            avg_volume = await self.asset_avg_volume(name)
            stats.append(AssetStat(name=name, momentum=float(momentum or 0), avg_volume=avg_volume))
        return stats
