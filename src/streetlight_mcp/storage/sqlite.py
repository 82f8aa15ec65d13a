"""SQLite-backed Store for single-node deployments.

All statements run in a worker thread (``asyncio.to_thread``) behind one
lock, so the event loop never blocks on disk I/O and writes to the same
key are serialized.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
import sqlite3
import threading
from typing import Any

from ..models.alerts import Alert
from ..models.telemetry import BoxState, LeakageSample, PowerSample
from ..models.time_policy import STAGE_COUNT, Stage, TimePolicy

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS box_state (
    box_id TEXT PRIMARY KEY,
    state INTEGER NOT NULL,
    brightness INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS box_schedule (
    box_id TEXT PRIMARY KEY,
    t_hour INTEGER NOT NULL,
    t_minute INTEGER NOT NULL,
    t_s1 INTEGER NOT NULL, t_s1_b INTEGER NOT NULL,
    t_s2 INTEGER NOT NULL, t_s2_b INTEGER NOT NULL,
    t_s3 INTEGER NOT NULL, t_s3_b INTEGER NOT NULL,
    t_s4 INTEGER NOT NULL, t_s4_b INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS box_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    box_id TEXT NOT NULL,
    vol REAL NOT NULL,
    cur REAL NOT NULL,
    pow REAL NOT NULL,
    time_utc INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_box_log_box_time ON box_log (box_id, time_utc);
CREATE TABLE IF NOT EXISTS leakage_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    leakage_id TEXT NOT NULL,
    msg_id INTEGER NOT NULL,
    time_utc INTEGER NOT NULL,
    v REAL NOT NULL,
    i REAL NOT NULL,
    r REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS alert (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    address TEXT NOT NULL,
    alert_device TEXT,
    alert_type TEXT NOT NULL,
    alert_content REAL,
    time_utc INTEGER NOT NULL,
    UNIQUE (kind, address, alert_type, time_utc)
);
CREATE TABLE IF NOT EXISTS setting (
    setting_name TEXT PRIMARY KEY,
    setting_value REAL NOT NULL
);
"""


def get_connection(db_path: str | pathlib.Path) -> sqlite3.Connection:
    path_obj = pathlib.Path(db_path)
    if str(path_obj) != ":memory:" and not path_obj.parent.exists():
        path_obj.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path_obj), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


class SQLiteStore:
    """Store implementation on a single SQLite connection."""

    def __init__(self, db_path: str | pathlib.Path) -> None:
        self._conn = get_connection(db_path)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        logger.info("SQLite store ready at %s", db_path)

    def _close(self) -> None:
        with self._lock:
            self._conn.close()

    async def close(self) -> None:
        await self._run(self._close)
        logger.info("SQLite store closed")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor

    def _fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    async def _run(self, fn, *args: Any):
        return await asyncio.to_thread(fn, *args)

    async def upsert_box_state(self, address: str, state: int, brightness: int) -> None:
        await self._run(
            self._execute,
            """
            INSERT INTO box_state (box_id, state, brightness) VALUES (?, ?, ?)
            ON CONFLICT (box_id) DO UPDATE SET
                state = excluded.state, brightness = excluded.brightness
            """,
            (address, state, brightness),
        )

    async def get_box_state(self, address: str) -> BoxState | None:
        row = await self._run(
            self._fetchone,
            "SELECT box_id, state, brightness FROM box_state WHERE box_id = ?",
            (address,),
        )
        if row is None:
            return None
        return BoxState(address=row["box_id"], state=row["state"], brightness=row["brightness"])

    async def update_box_schedule(self, address: str, policy: TimePolicy) -> None:
        stage_values: list[int] = []
        for stage in policy.stages:
            stage_values.extend((stage.minutes, stage.brightness))
        await self._run(
            self._execute,
            """
            INSERT INTO box_schedule (
                box_id, t_hour, t_minute,
                t_s1, t_s1_b, t_s2, t_s2_b, t_s3, t_s3_b, t_s4, t_s4_b
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (box_id) DO UPDATE SET
                t_hour = excluded.t_hour, t_minute = excluded.t_minute,
                t_s1 = excluded.t_s1, t_s1_b = excluded.t_s1_b,
                t_s2 = excluded.t_s2, t_s2_b = excluded.t_s2_b,
                t_s3 = excluded.t_s3, t_s3_b = excluded.t_s3_b,
                t_s4 = excluded.t_s4, t_s4_b = excluded.t_s4_b
            """,
            (address, policy.hour, policy.minute, *stage_values),
        )

    async def get_box_schedule(self, address: str) -> TimePolicy | None:
        row = await self._run(
            self._fetchone, "SELECT * FROM box_schedule WHERE box_id = ?", (address,)
        )
        if row is None:
            return None
        stages = [
            Stage(minutes=row[f"t_s{i}"], brightness=row[f"t_s{i}_b"])
            for i in range(1, STAGE_COUNT + 1)
        ]
        return TimePolicy(hour=row["t_hour"], minute=row["t_minute"], stages=stages)

    async def append_power_sample(self, sample: PowerSample) -> None:
        await self._run(
            self._execute,
            "INSERT INTO box_log (box_id, vol, cur, pow, time_utc) VALUES (?, ?, ?, ?, ?)",
            (sample.address, sample.voltage, sample.current, sample.power, sample.time_utc),
        )

    async def latest_power_sample(self, address: str) -> PowerSample | None:
        row = await self._run(
            self._fetchone,
            """
            SELECT box_id, vol, cur, pow, time_utc FROM box_log
            WHERE box_id = ? ORDER BY time_utc DESC, id DESC LIMIT 1
            """,
            (address,),
        )
        if row is None:
            return None
        return PowerSample(
            address=row["box_id"],
            voltage=row["vol"],
            current=row["cur"],
            power=row["pow"],
            time_utc=row["time_utc"],
        )

    async def append_leakage_sample(self, sample: LeakageSample) -> None:
        await self._run(
            self._execute,
            """
            INSERT INTO leakage_log (leakage_id, msg_id, time_utc, v, i, r)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                sample.address,
                sample.msg_id,
                sample.time_utc,
                sample.voltage,
                sample.current,
                sample.resistance,
            ),
        )

    async def append_alert(self, alert: Alert) -> None:
        await self._run(
            self._execute,
            """
            INSERT OR IGNORE INTO alert (
                kind, address, alert_device, alert_type, alert_content, time_utc
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                alert.kind.value,
                alert.address,
                alert.device,
                str(alert.alert_type),
                alert.content,
                alert.time_utc,
            ),
        )

    async def read_threshold(self, name: str) -> float | None:
        row = await self._run(
            self._fetchone,
            "SELECT setting_value FROM setting WHERE setting_name = ?",
            (name,),
        )
        return None if row is None else float(row["setting_value"])

    async def write_threshold_if_absent(self, name: str, default: float) -> bool:
        cursor = await self._run(
            self._execute,
            "INSERT OR IGNORE INTO setting (setting_name, setting_value) VALUES (?, ?)",
            (name, default),
        )
        return cursor.rowcount == 1
