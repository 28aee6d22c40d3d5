"""SQLite-backed storage for tasks, bids, line items and carrier whitelists."""

from __future__ import annotations

import contextlib
import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class DuplicateBidError(Exception):
    """Raised when a carrier already has an outstanding bid on the task."""


class UnitOfWorkClosedError(RuntimeError):
    """Raised when a unit of work is used after commit or rollback."""


class TransactionAbortedError(RuntimeError):
    """Raised when the database fails inside a unit of work; nothing was committed."""


def utc_now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utc_iso_in(seconds: int) -> str:
    """Return the UTC time the given number of seconds from now, formatted like utc_now_iso."""
    moment = datetime.now(UTC) + timedelta(seconds=seconds)
    return moment.isoformat(timespec="microseconds").replace("+00:00", "Z")


_TASK_COLUMNS: tuple[str, ...] = (
    "task_id",
    "customer_id",
    "carrier_id",
    "title",
    "pickup",
    "dropoff",
    "notes",
    "scheduled_at",
    "price",
    "status",
    "paid",
    "category",
    "service_level",
    "is_published",
    "visible_after",
    "requires_activation",
    "created_at",
    "updated_at",
)
_TASK_COLUMNS_SQL = ", ".join(_TASK_COLUMNS)
_TASK_SELECT_BASE_SQL = "SELECT " + _TASK_COLUMNS_SQL + " FROM tasks"  # nosec B608
_TASK_SELECT_BY_ID_SQL = _TASK_SELECT_BASE_SQL + " WHERE task_id = ?"
_UPDATABLE_TASK_COLUMNS = frozenset(_TASK_COLUMNS) - {"task_id", "created_at"}

_BID_COLUMNS: tuple[str, ...] = (
    "bid_id",
    "task_id",
    "carrier_id",
    "amount",
    "message",
    "status",
    "created_at",
    "updated_at",
)
_BID_SELECT_BASE_SQL = "SELECT " + ", ".join(_BID_COLUMNS) + " FROM bids"  # nosec B608

_ITEM_COLUMNS: tuple[str, ...] = (
    "item_id",
    "task_id",
    "item_type",
    "description",
    "length_cm",
    "width_cm",
    "height_cm",
    "weight_kg",
    "count",
)

# A carrier is visible-eligible for a task when the task is published, activated,
# past its visibility delay, still biddable, and either has no whitelist or lists
# the carrier.
_CARRIER_VISIBLE_SQL = (
    "(is_published = 1 AND requires_activation = 0 "
    "AND (visible_after IS NULL OR visible_after <= ?) "
    "AND status NOT IN ('DELIVERED', 'CANCELLED') AND paid = 0 "
    "AND (NOT EXISTS (SELECT 1 FROM task_whitelist w WHERE w.task_id = tasks.task_id) "
    "OR EXISTS (SELECT 1 FROM task_whitelist w "
    "WHERE w.task_id = tasks.task_id AND w.carrier_id = ?)))"
)


_INSERT_ITEM_SQL = """
    INSERT INTO task_items (
        task_id, item_type, description, length_cm,
        width_cm, height_cm, weight_kg, count
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


def _item_params(task_id: int, item: dict[str, Any]) -> tuple[object, ...]:
    return (
        task_id,
        item["item_type"],
        item["description"],
        item["length_cm"],
        item["width_cm"],
        item["height_cm"],
        item["weight_kg"],
        item["count"],
    )


def _row_to_task(row: sqlite3.Row) -> dict[str, Any]:
    return {column: row[column] for column in _TASK_COLUMNS}


def _row_to_bid(row: sqlite3.Row) -> dict[str, Any]:
    return {column: row[column] for column in _BID_COLUMNS}


def _row_to_item(row: sqlite3.Row) -> dict[str, Any]:
    return {column: row[column] for column in _ITEM_COLUMNS}


def _update_task_sql(
    task_id: int,
    updates: dict[str, Any],
    expected_status: str | None,
) -> tuple[str, list[object]]:
    if any(column not in _UPDATABLE_TASK_COLUMNS for column in updates):
        msg = "Attempted to update unknown task column"
        raise ValueError(msg)

    set_clause = ", ".join(f"{column} = ?" for column in updates)
    params: list[object] = list(updates.values())

    query = "UPDATE tasks SET " + set_clause + " WHERE task_id = ?"  # nosec B608
    params.append(task_id)
    if expected_status is not None:
        query += " AND status = ?"
        params.append(expected_status)
    return query, params


class UnitOfWork:
    """
    Mutations allowed inside one open BEGIN IMMEDIATE transaction.

    Obtained only through TaskStore.unit_of_work(). Every method refuses
    to run once the transaction has been committed or rolled back, so a
    multi-step change cannot leak writes outside its transaction.
    """

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db
        self._open = True

    def _execute(self, query: str, params: tuple[object, ...] | list[object] = ()) -> sqlite3.Cursor:
        if not self._open:
            msg = "Unit of work is closed"
            raise UnitOfWorkClosedError(msg)
        return self._db.execute(query, params)

    def close(self) -> None:
        self._open = False

    def get_task(self, task_id: int) -> dict[str, Any] | None:
        """Read a task inside the transaction."""
        row = self._execute(_TASK_SELECT_BY_ID_SQL, (task_id,)).fetchone()
        return None if row is None else _row_to_task(row)

    def get_bid(self, bid_id: int) -> dict[str, Any] | None:
        """Read a bid inside the transaction."""
        row = self._execute(_BID_SELECT_BASE_SQL + " WHERE bid_id = ?", (bid_id,)).fetchone()
        return None if row is None else _row_to_bid(row)

    def insert_bid(self, bid_data: dict[str, Any]) -> int:
        """
        Insert a bid and return its id.

        The outstanding-bid uniqueness is enforced by a unique index, so the
        insert itself is the duplicate check.
        """
        try:
            cursor = self._execute(
                """
                INSERT INTO bids (task_id, carrier_id, amount, message, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    bid_data["task_id"],
                    bid_data["carrier_id"],
                    bid_data["amount"],
                    bid_data["message"],
                    bid_data["status"],
                    bid_data["created_at"],
                    bid_data["created_at"],
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateBidError("Carrier already has an outstanding bid on this task") from exc
            raise
        return int(cursor.lastrowid or 0)

    def set_bid_status(self, bid_id: int, status: str, updated_at: str) -> int:
        """Set one bid's status."""
        cursor = self._execute(
            "UPDATE bids SET status = ?, updated_at = ? WHERE bid_id = ?",
            (status, updated_at, bid_id),
        )
        return int(cursor.rowcount)

    def reject_other_bids(self, task_id: int, keep_bid_id: int, updated_at: str) -> int:
        """Mark every bid on the task except keep_bid_id as REJECTED."""
        cursor = self._execute(
            "UPDATE bids SET status = 'REJECTED', updated_at = ? "
            "WHERE task_id = ? AND bid_id != ? AND status != 'REJECTED'",
            (updated_at, task_id, keep_bid_id),
        )
        return int(cursor.rowcount)

    def reject_accepted_bids(self, task_id: int, updated_at: str) -> int:
        """Demote any ACCEPTED bid on the task to REJECTED."""
        cursor = self._execute(
            "UPDATE bids SET status = 'REJECTED', updated_at = ? "
            "WHERE task_id = ? AND status = 'ACCEPTED'",
            (updated_at, task_id),
        )
        return int(cursor.rowcount)

    def update_task(
        self,
        task_id: int,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        query, params = _update_task_sql(task_id, updates, expected_status)
        return int(self._execute(query, params).rowcount)

    def clear_whitelist(self, task_id: int) -> int:
        """Delete every whitelist row for the task."""
        cursor = self._execute("DELETE FROM task_whitelist WHERE task_id = ?", (task_id,))
        return int(cursor.rowcount)

    def replace_items(self, task_id: int, items: list[dict[str, Any]]) -> None:
        """Replace all line items of the task."""
        self._execute("DELETE FROM task_items WHERE task_id = ?", (task_id,))
        for item in items:
            self._execute(_INSERT_ITEM_SQL, _item_params(task_id, item))

    def is_visible_to_carrier(self, task_id: int, carrier_id: int, now: str) -> bool:
        """Check board visibility inside the transaction."""
        query = "SELECT 1 FROM tasks WHERE task_id = ? AND " + _CARRIER_VISIBLE_SQL  # nosec B608
        return self._execute(query, (task_id, now, carrier_id)).fetchone() is not None


class TaskStore:
    """SQLite-backed storage for tasks, bids, line items and whitelists."""

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id INTEGER,
                    carrier_id INTEGER,
                    title TEXT NOT NULL,
                    pickup TEXT,
                    dropoff TEXT,
                    notes TEXT,
                    scheduled_at TEXT,
                    price TEXT,
                    status TEXT NOT NULL DEFAULT 'NEW',
                    paid INTEGER NOT NULL DEFAULT 0,
                    category TEXT,
                    service_level TEXT,
                    is_published INTEGER NOT NULL DEFAULT 0,
                    visible_after TEXT,
                    requires_activation INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS bids (
                    bid_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    carrier_id INTEGER NOT NULL,
                    amount TEXT NOT NULL,
                    message TEXT,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE UNIQUE INDEX IF NOT EXISTS bids_one_outstanding_per_carrier
                    ON bids (task_id, carrier_id) WHERE status != 'REJECTED';

                CREATE INDEX IF NOT EXISTS bids_by_carrier ON bids (carrier_id);

                CREATE TABLE IF NOT EXISTS task_items (
                    item_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    item_type TEXT NOT NULL,
                    description TEXT,
                    length_cm INTEGER,
                    width_cm INTEGER,
                    height_cm INTEGER,
                    weight_kg INTEGER,
                    count INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS task_whitelist (
                    task_id INTEGER NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    carrier_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (task_id, carrier_id)
                );
                """
            )
            self._db.commit()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """
        Open a BEGIN IMMEDIATE transaction and yield its UnitOfWork.

        Commits when the block exits normally; rolls back on any exception,
        including ServiceErrors raised by precondition checks inside the block.
        SQLite failures surface as TransactionAbortedError after the rollback.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise TransactionAbortedError("Could not start transaction") from exc
            uow = UnitOfWork(self._db)
            try:
                yield uow
                uow.close()
                self._db.commit()
            except sqlite3.Error as exc:
                uow.close()
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise TransactionAbortedError("Transaction rolled back") from exc
            except BaseException:
                uow.close()
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any], items: list[dict[str, Any]]) -> int:
        """Insert a task with its line items atomically and return the new task_id."""
        columns = [column for column in _TASK_COLUMNS if column != "task_id"]
        placeholders = ", ".join("?" for _ in columns)
        query = (
            "INSERT INTO tasks (" + ", ".join(columns) + ") VALUES (" + placeholders + ")"  # nosec B608
        )
        values = tuple(task_data[column] for column in columns)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(query, values)
                task_id = int(cursor.lastrowid or 0)
                for item in items:
                    self._db.execute(_INSERT_ITEM_SQL, _item_params(task_id, item))
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
        return task_id

    def get_task(self, task_id: int) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._lock:
            row = self._db.execute(_TASK_SELECT_BY_ID_SQL, (task_id,)).fetchone()
        if row is None:
            return None
        return _row_to_task(row)

    def update_task(
        self,
        task_id: int,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        query, params = _update_task_sql(task_id, updates, expected_status)
        with self._lock:
            cursor = self._db.execute(query, params)
            self._db.commit()
        return int(cursor.rowcount)

    def delete_task(self, task_id: int) -> int:
        """Delete a task; bids, items and whitelist rows cascade."""
        with self._lock:
            cursor = self._db.execute("DELETE FROM tasks WHERE task_id = ?", (task_id,))
            self._db.commit()
        return int(cursor.rowcount)

    def query_tasks(
        self,
        *,
        status: str | None,
        title_contains: str | None,
        customer_id: int | None,
        carrier_scope: int | None,
        now: str | None,
        limit: int,
        offset: int,
    ) -> tuple[int, list[dict[str, Any]]]:
        """
        Filter tasks and return (total matching, one page of rows).

        carrier_scope restricts the result to tasks assigned to that carrier
        or visible to it on the open board at time now.
        """
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if title_contains:
            clauses.append("LOWER(title) LIKE ? ESCAPE '\\'")
            escaped = (
                title_contains.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            )
            params.append(f"%{escaped}%")
        if customer_id is not None:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        if carrier_scope is not None:
            clauses.append("(carrier_id = ? OR " + _CARRIER_VISIBLE_SQL + ")")
            params.extend([carrier_scope, now, carrier_scope])

        where = ""
        if len(clauses) > 0:
            where = " WHERE " + " AND ".join(clauses)

        count_query = "SELECT COUNT(*) FROM tasks" + where  # nosec B608
        page_query = (
            _TASK_SELECT_BASE_SQL + where + " ORDER BY created_at DESC, task_id DESC LIMIT ? OFFSET ?"
        )

        with self._lock:
            total_row = self._db.execute(count_query, params).fetchone()
            rows = self._db.execute(page_query, [*params, limit, offset]).fetchall()
        total = int(total_row[0]) if total_row is not None else 0
        return total, [_row_to_task(row) for row in rows]

    def is_visible_to_carrier(self, task_id: int, carrier_id: int, now: str) -> bool:
        """Return True when the task shows up on the open board for the carrier."""
        query = "SELECT 1 FROM tasks WHERE task_id = ? AND " + _CARRIER_VISIBLE_SQL  # nosec B608
        with self._lock:
            row = self._db.execute(query, (task_id, now, carrier_id)).fetchone()
        return row is not None

    def count_tasks(self) -> int:
        """Count total tasks."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(row[0]) if row is not None else 0

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    def get_bid(self, bid_id: int) -> dict[str, Any] | None:
        """Fetch a bid by ID."""
        with self._lock:
            row = self._db.execute(
                _BID_SELECT_BASE_SQL + " WHERE bid_id = ?",
                (bid_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_bid(row)

    def get_bids_for_task(self, task_id: int) -> list[dict[str, Any]]:
        """Fetch all bids for a task, newest first."""
        with self._lock:
            rows = self._db.execute(
                _BID_SELECT_BASE_SQL + " WHERE task_id = ? ORDER BY created_at DESC, bid_id DESC",
                (task_id,),
            ).fetchall()
        return [_row_to_bid(row) for row in rows]

    def get_bids_for_carrier(self, carrier_id: int) -> list[dict[str, Any]]:
        """Fetch a carrier's bids joined with a summary of each task, newest first."""
        with self._lock:
            rows = self._db.execute(
                """
                SELECT b.bid_id, b.task_id, b.carrier_id, b.amount, b.message, b.status,
                       b.created_at, b.updated_at,
                       t.title AS task_title, t.status AS task_status, t.price AS task_price
                FROM bids b JOIN tasks t ON t.task_id = b.task_id
                WHERE b.carrier_id = ?
                ORDER BY b.created_at DESC, b.bid_id DESC
                """,
                (carrier_id,),
            ).fetchall()
        result: list[dict[str, Any]] = []
        for row in rows:
            bid = _row_to_bid(row)
            bid["task_title"] = row["task_title"]
            bid["task_status"] = row["task_status"]
            bid["task_price"] = row["task_price"]
            result.append(bid)
        return result

    # ------------------------------------------------------------------
    # Line items and whitelist
    # ------------------------------------------------------------------

    def get_items_for_task(self, task_id: int) -> list[dict[str, Any]]:
        """Fetch the line items of a task in insertion order."""
        with self._lock:
            rows = self._db.execute(
                "SELECT " + ", ".join(_ITEM_COLUMNS) + " FROM task_items "  # nosec B608
                "WHERE task_id = ? ORDER BY item_id",
                (task_id,),
            ).fetchall()
        return [_row_to_item(row) for row in rows]

    def add_to_whitelist(self, task_id: int, carrier_id: int) -> None:
        """Whitelist a carrier for a task. Adding an existing pair is a no-op."""
        with self._lock:
            self._db.execute(
                "INSERT OR IGNORE INTO task_whitelist (task_id, carrier_id, created_at) "
                "VALUES (?, ?, ?)",
                (task_id, carrier_id, utc_now_iso()),
            )
            self._db.commit()

    def get_whitelist(self, task_id: int) -> list[int]:
        """Return whitelisted carrier ids for a task."""
        with self._lock:
            rows = self._db.execute(
                "SELECT carrier_id FROM task_whitelist WHERE task_id = ? ORDER BY carrier_id",
                (task_id,),
            ).fetchall()
        return [int(row[0]) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
