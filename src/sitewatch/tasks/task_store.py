# src/sitewatch/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path

from .task_models import AlertMode, Task, TaskDraft

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection

    The store only persists; it does not rebuild the schedule. Callers that
    mutate tasks go through tasks.task_api, which refreshes the scheduler.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    url TEXT,
                    tags TEXT,
                    schedule TEXT,
                    raw_schedule TEXT,
                    alert_if_true TEXT NOT NULL DEFAULT 'no',
                    prompt TEXT NOT NULL,
                    destination TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("tags", "TEXT")
            add_col("schedule", "TEXT")
            add_col("raw_schedule", "TEXT")
            add_col("alert_if_true", "TEXT NOT NULL DEFAULT 'no'")
            add_col("destination", "TEXT NOT NULL DEFAULT ''")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_destination ON tasks(destination)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _opt(value: object) -> str | None:
        if value is None:
            return None
        s = str(value).strip()
        return s or None

    def _row_to_task(self, row: sqlite3.Row) -> Task | None:
        name = str(row["name"] or "").strip()
        prompt = str(row["prompt"] or "")
        destination = str(row["destination"] or "").strip()
        if not name or not prompt.strip() or not destination:
            logger.error("Invalid task row skipped id=%s", row["id"])
            return None

        return Task(
            id=int(row["id"]),
            name=name,
            prompt=prompt,
            destination=destination,
            url=self._opt(row["url"]),
            tag_selectors=self._opt(row["tags"]),
            schedule=self._opt(row["schedule"]),
            raw_schedule=self._opt(row["raw_schedule"]),
            alert_if_true=AlertMode.from_db(row["alert_if_true"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _draft_params(draft: TaskDraft) -> tuple:
        return (
            draft.name.strip(),
            draft.url,
            draft.tag_selectors,
            draft.schedule,
            draft.raw_schedule,
            AlertMode(draft.alert_if_true).value,
            draft.prompt,
            draft.destination.strip(),
        )

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def list_tasks(self, destination: str | None = None) -> list[Task]:
        """All valid tasks (optionally for one destination), ordered by id."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            if destination is None:
                cur.execute("SELECT * FROM tasks ORDER BY id ASC")
            else:
                cur.execute("SELECT * FROM tasks WHERE destination = ? ORDER BY id ASC", (destination,))
            tasks = (self._row_to_task(r) for r in cur.fetchall())
            return [t for t in tasks if t is not None]
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def add_task(self, draft: TaskDraft) -> int:
        if not draft.name or not draft.name.strip():
            raise ValueError("name is required")
        if not draft.destination or not draft.destination.strip():
            raise ValueError("destination is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    name, url, tags, schedule, raw_schedule,
                    alert_if_true, prompt, destination,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (*self._draft_params(draft), now, now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            logger.debug(
                "Task added id=%s name=%s schedule=%s destination=%s",
                task_id,
                draft.name,
                draft.schedule,
                draft.destination,
            )
            return task_id
        finally:
            conn.close()

    def update_task(self, task_id: int, draft: TaskDraft) -> bool:
        """Replace all editable fields. Returns False if the task does not exist."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE tasks
                SET name = ?, url = ?, tags = ?, schedule = ?, raw_schedule = ?,
                    alert_if_true = ?, prompt = ?, destination = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (*self._draft_params(draft), time.time(), int(task_id)),
            )
            conn.commit()
            updated = cur.rowcount == 1
            logger.debug("Task update id=%s updated=%s", task_id, updated)
            return updated
        finally:
            conn.close()

    def delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            deleted = cur.rowcount == 1
            logger.debug("Task delete id=%s deleted=%s", task_id, deleted)
            return deleted
        finally:
            conn.close()
