"""SQLite repository for engine events and the alert notification log."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional


JsonDict = Dict[str, Any]


@dataclass(frozen=True)
class NotificationRow:
    id: int
    created_at: str
    symbol: str
    timeframe: str
    type: str
    rsi: Optional[float]
    body: Optional[str]
    read: bool


class SQLiteRepository:
    def __init__(self, db_path: Path) -> None:
        self._path = db_path
        if self._path.as_posix() != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path.as_posix(), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              type TEXT NOT NULL,
              message TEXT NOT NULL,
              data_json TEXT
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS notifications (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              created_at TEXT NOT NULL,
              symbol TEXT NOT NULL,
              timeframe TEXT NOT NULL,
              type TEXT NOT NULL,
              rsi REAL,
              body TEXT,
              read INTEGER NOT NULL DEFAULT 0
            );
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def log_event(
        self,
        *,
        ts: str,
        level: str,
        type: str,
        message: str,
        data: Optional[JsonDict] = None,
    ) -> None:
        cur = self._conn.cursor()
        cur.execute(
            "INSERT INTO events(ts, level, type, message, data_json) VALUES(?,?,?,?,?)",
            (ts, level, type, message, json.dumps(data or {})),
        )
        self._conn.commit()

    def list_events(self, limit: int = 200) -> List[JsonDict]:
        cur = self._conn.cursor()
        rows = cur.execute(
            "SELECT ts, level, type, message, data_json FROM events ORDER BY id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        out: List[JsonDict] = []
        for r in rows:
            out.append(
                {
                    "ts": r["ts"],
                    "level": r["level"],
                    "type": r["type"],
                    "message": r["message"],
                    "data": json.loads(r["data_json"] or "{}"),
                }
            )
        return out

    # ---------------- Notifications ----------------

    def insert_notification(
        self,
        *,
        created_at: str,
        symbol: str,
        timeframe: str,
        type: str,
        rsi: Optional[float] = None,
        body: Optional[str] = None,
    ) -> int:
        cur = self._conn.cursor()
        cur.execute(
            "INSERT INTO notifications(created_at, symbol, timeframe, type, rsi, body, read) VALUES(?,?,?,?,?,?,0)",
            (created_at, symbol, timeframe, type, rsi, body),
        )
        self._conn.commit()
        return int(cur.lastrowid)

    def trim_notifications(self, keep: int) -> int:
        """Delete everything but the newest `keep` rows. Returns the number deleted."""
        cur = self._conn.cursor()
        cur.execute(
            "DELETE FROM notifications WHERE id NOT IN (SELECT id FROM notifications ORDER BY id DESC LIMIT ?)",
            (keep,),
        )
        self._conn.commit()
        return cur.rowcount

    def list_notifications(self, limit: int = 50) -> List[NotificationRow]:
        cur = self._conn.cursor()
        rows = cur.execute(
            "SELECT * FROM notifications ORDER BY id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            NotificationRow(
                id=r["id"],
                created_at=r["created_at"],
                symbol=r["symbol"],
                timeframe=r["timeframe"],
                type=r["type"],
                rsi=r["rsi"],
                body=r["body"],
                read=bool(r["read"]),
            )
            for r in rows
        ]

    def mark_notifications_read(self) -> None:
        cur = self._conn.cursor()
        cur.execute("UPDATE notifications SET read = 1 WHERE read = 0")
        self._conn.commit()

    def clear_notifications(self) -> None:
        cur = self._conn.cursor()
        cur.execute("DELETE FROM notifications")
        self._conn.commit()

    def count_unread_notifications(self) -> int:
        cur = self._conn.cursor()
        row = cur.execute("SELECT COUNT(*) FROM notifications WHERE read = 0").fetchone()
        return int(row[0]) if row else 0
