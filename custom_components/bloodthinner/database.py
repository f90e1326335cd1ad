"""SQLite database for Blood Thinner Tracker patterns and dose logs."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import aiosqlite
from homeassistant.util import dt as dt_util

from .dosage import DoseLogEntry, DoseStatus
from .history import PatternVersion, plan_new_version
from .pattern import to_decimal, validate_sequence

_LOGGER = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS dosage_patterns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    config_entry_id TEXT NOT NULL,
    sequence TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT,
    notes TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS dose_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    config_entry_id TEXT NOT NULL,
    scheduled_at TEXT NOT NULL,
    taken_at TEXT,
    status TEXT NOT NULL,
    actual_dose TEXT,
    expected_dose TEXT,
    pattern_day INTEGER,
    scheduled_day_index INTEGER,
    pattern_id INTEGER,
    notes TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_patterns_entry_start
    ON dosage_patterns(config_entry_id, start_date);
CREATE INDEX IF NOT EXISTS idx_dose_logs_entry_ts
    ON dose_logs(config_entry_id, scheduled_at);
"""


_LOG_COLUMNS = (
    "id, scheduled_at, taken_at, status, actual_dose, expected_dose, "
    "pattern_day, scheduled_day_index, pattern_id, notes"
)

def _dec_text(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _utc_text(value: datetime | None) -> str | None:
    """Timestamps are stored in UTC so text order is time order."""
    return None if value is None else dt_util.as_utc(value).isoformat()


def _local_dt(value: str | None) -> datetime | None:
    return None if not value else dt_util.as_local(datetime.fromisoformat(value))


def _row_to_version(row: aiosqlite.Row) -> PatternVersion:
    return PatternVersion(
        sequence=tuple(to_decimal(v) for v in json.loads(row["sequence"])),
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
        version_id=row["id"],
        notes=row["notes"],
    )


def _text_dec(value: str | None) -> Decimal | None:
    return None if value is None else to_decimal(value)


def _row_to_log(row: aiosqlite.Row) -> DoseLogEntry:
    return DoseLogEntry(
        scheduled_at=_local_dt(row["scheduled_at"]),
        status=DoseStatus(row["status"]),
        taken_at=_local_dt(row["taken_at"]),
        actual_dose=_text_dec(row["actual_dose"]),
        expected_dose=_text_dec(row["expected_dose"]),
        pattern_day=row["pattern_day"],
        scheduled_day_index=row["scheduled_day_index"],
        pattern_version_id=row["pattern_id"],
        log_id=row["id"],
        notes=row["notes"],
    )


class BloodThinnerDatabase:
    """Async SQLite database wrapper for pattern history and dose logs."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def async_setup(self) -> None:
        """Open the database and create tables if needed."""
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        # WAL mode allows concurrent reads during writes
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA busy_timeout = 5000")
        await self._db.executescript(CREATE_TABLES)
        await self._db.commit()
        _LOGGER.debug("Blood thinner database initialized at %s", self._db_path)

    async def async_close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Blood thinner database is not initialized")
        return self._db

    # ── Dosage patterns ─────────────────────────────────────────────────────

    async def get_patterns(self, config_entry_id: str) -> list[PatternVersion]:
        """Get every pattern version for an entry, oldest start first."""
        cursor = await self._conn().execute(
            "SELECT id, sequence, start_date, end_date, notes "
            "FROM dosage_patterns WHERE config_entry_id = ? "
            "ORDER BY start_date ASC, id ASC",
            (config_entry_id,),
        )
        rows = await cursor.fetchall()
        return [_row_to_version(row) for row in rows]

    async def add_pattern(
        self,
        config_entry_id: str,
        sequence: list[Decimal] | tuple[Decimal, ...],
        start_date: date,
        end_date: date | None = None,
        notes: str | None = None,
        close_previous: bool = True,
    ) -> PatternVersion:
        """Store a new pattern version.

        The overlap check and the closing of the previous version happen
        under the write lock, so two concurrent edits cannot both pass.
        """
        sequence = tuple(to_decimal(v) for v in sequence)
        validate_sequence(sequence)
        db = self._conn()
        now = time.time()

        async with self._write_lock:
            existing = await self.get_patterns(config_entry_id)
            closed = plan_new_version(existing, start_date, end_date, close_previous)
            if closed is not None:
                await db.execute(
                    "UPDATE dosage_patterns SET end_date = ?, updated_at = ? "
                    "WHERE id = ? AND config_entry_id = ?",
                    (
                        closed.end_date.isoformat(),
                        now,
                        closed.version_id,
                        config_entry_id,
                    ),
                )
                _LOGGER.info(
                    "Closed dosage pattern %s for %s, end date set to %s",
                    closed.version_id,
                    config_entry_id,
                    closed.end_date,
                )
            cursor = await db.execute(
                "INSERT INTO dosage_patterns (config_entry_id, sequence, "
                "start_date, end_date, notes, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    config_entry_id,
                    json.dumps([str(v) for v in sequence]),
                    start_date.isoformat(),
                    end_date.isoformat() if end_date else None,
                    notes,
                    now,
                    now,
                ),
            )
            await db.commit()

        version = PatternVersion(
            sequence=sequence,
            start_date=start_date,
            end_date=end_date,
            version_id=cursor.lastrowid,
            notes=notes,
        )
        _LOGGER.info(
            "Created dosage pattern %s for %s, length %d, start %s",
            version.version_id,
            config_entry_id,
            version.length,
            start_date,
        )
        return version

    # ── Dose logs ───────────────────────────────────────────────────────────

    async def add_dose_log(
        self, config_entry_id: str, entry: DoseLogEntry
    ) -> DoseLogEntry:
        """Record a dose log entry. Returns it with its row ID set."""
        db = self._conn()
        now = time.time()
        async with self._write_lock:
            cursor = await db.execute(
                "INSERT INTO dose_logs (config_entry_id, scheduled_at, taken_at, "
                "status, actual_dose, expected_dose, pattern_day, "
                "scheduled_day_index, pattern_id, notes, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    config_entry_id,
                    _utc_text(entry.scheduled_at),
                    _utc_text(entry.taken_at),
                    entry.status.value,
                    _dec_text(entry.actual_dose),
                    _dec_text(entry.expected_dose),
                    entry.pattern_day,
                    entry.scheduled_day_index,
                    entry.pattern_version_id,
                    entry.notes,
                    now,
                    now,
                ),
            )
            await db.commit()
        return replace(entry, log_id=cursor.lastrowid)

    async def get_dose_logs(
        self,
        config_entry_id: str,
        since: datetime | None = None,
    ) -> list[DoseLogEntry]:
        """Get dose logs for an entry, optionally filtered by time."""
        db = self._conn()
        query = f"SELECT {_LOG_COLUMNS} FROM dose_logs WHERE config_entry_id = ?"
        params: tuple[Any, ...] = (config_entry_id,)
        if since is not None:
            query += " AND scheduled_at >= ?"
            params += (_utc_text(since),)
        cursor = await db.execute(query + " ORDER BY scheduled_at ASC", params)
        rows = await cursor.fetchall()
        return [_row_to_log(row) for row in rows]

    async def get_dose_log(
        self, config_entry_id: str, log_id: int
    ) -> DoseLogEntry | None:
        """Get one dose log by ID."""
        cursor = await self._conn().execute(
            f"SELECT {_LOG_COLUMNS} FROM dose_logs "
            "WHERE id = ? AND config_entry_id = ?",
            (log_id, config_entry_id),
        )
        row = await cursor.fetchone()
        return _row_to_log(row) if row is not None else None

    async def correct_actual_dose(
        self,
        config_entry_id: str,
        log_id: int,
        actual_dose: Decimal | None,
    ) -> bool:
        """Correct the actual amount of a log. The expected dose is kept."""
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "UPDATE dose_logs SET actual_dose = ?, updated_at = ? "
                "WHERE id = ? AND config_entry_id = ?",
                (_dec_text(actual_dose), time.time(), log_id, config_entry_id),
            )
            await db.commit()
        return cursor.rowcount > 0

    async def delete_dose_log(self, config_entry_id: str, log_id: int) -> bool:
        """Delete a dose log by ID. Returns True if a row was deleted."""
        db = self._conn()
        async with self._write_lock:
            cursor = await db.execute(
                "DELETE FROM dose_logs WHERE id = ? AND config_entry_id = ?",
                (log_id, config_entry_id),
            )
            await db.commit()
        return cursor.rowcount > 0

    # ── Clear all data ───────────────────────────────────────────────────────

    async def clear_entry_data(self, config_entry_id: str) -> None:
        """Delete the patterns and dose logs of one entry."""
        db = self._conn()
        async with self._write_lock:
            await db.execute(
                "DELETE FROM dose_logs WHERE config_entry_id = ?",
                (config_entry_id,),
            )
            await db.execute(
                "DELETE FROM dosage_patterns WHERE config_entry_id = ?",
                (config_entry_id,),
            )
            await db.commit()
        _LOGGER.info("Dose logs and patterns cleared for %s", config_entry_id)
