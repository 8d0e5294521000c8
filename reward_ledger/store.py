"""
reward_ledger/store.py - SQLite storage for balances, reward stock and claims.

LedgerStore is the only writer of the three tables. One instance per
process, backed by a single SQLite file (or :memory: for tests). All access
to the shared connection goes through one lock, and every claim runs as a
single BEGIN IMMEDIATE transaction, so the sufficiency checks and the debits
are one unit: either everything commits or nothing does.
"""

import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from uuid import UUID

from .errors import (
    AccountExistsError,
    LedgerServiceError,
    RewardNotFoundError,
    StorageFailureError,
    UserNotFoundError,
)
from .models import (
    MAX_POINTS,
    UNLIMITED_STOCK,
    ClaimRecord,
    RejectionReason,
    Reward,
    UserBalance,
)

logger = logging.getLogger(__name__)


class ClaimCheckFailed(Exception):
    """A pre-mutation check in apply_claim did not hold. Nothing was written."""

    def __init__(self, reason: RejectionReason):
        super().__init__(reason.value)
        self.reason = reason


class LedgerStore:
    """Thin wrapper around SQLite for the reward ledger."""

    def __init__(self, path: str = "rewards.db", lock_timeout: float = 5.0):
        self.path = path
        self.lock_timeout = lock_timeout
        self._lock = threading.Lock()
        # isolation_level=None: transactions are opened explicitly below
        self._conn = sqlite3.connect(
            path,
            timeout=lock_timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS balances (
                user_id TEXT PRIMARY KEY,
                points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS rewards (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                points_required INTEGER NOT NULL CHECK (points_required > 0),
                stock INTEGER NOT NULL DEFAULT -1 CHECK (stock >= -1),
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS claims (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES balances (user_id),
                reward_id TEXT NOT NULL REFERENCES rewards (id),
                points_spent INTEGER NOT NULL,
                balance_after INTEGER NOT NULL,
                stock_after INTEGER NOT NULL,
                claimed_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_claims_user_reward
                ON claims (user_id, reward_id);
            """
        )

    def close(self) -> None:
        with self._locked():
            self._conn.close()

    # ------------------------------------------------------------------
    # Locking and transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[sqlite3.Connection]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise StorageFailureError(
                f"Timed out after {self.lock_timeout}s waiting for the ledger"
            )
        try:
            yield self._conn
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block as one BEGIN IMMEDIATE ... COMMIT unit.

        Any exception rolls the whole unit back. sqlite3 errors surface as
        StorageFailureError; everything else is re-raised unchanged.
        """
        with self._locked() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageFailureError(f"Could not open ledger transaction: {e}") from e
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                logger.error(f"Ledger transaction rolled back: {e}")
                raise StorageFailureError(f"Ledger transaction failed: {e}") from e
            except BaseException:
                self._rollback(conn)
                raise

    def _rollback(self, conn: sqlite3.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("ROLLBACK failed")

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._locked() as conn:
            try:
                return conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                raise StorageFailureError(f"Ledger read failed: {e}") from e

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._locked() as conn:
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageFailureError(f"Ledger read failed: {e}") from e

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def open_account(self, user_id: Optional[UUID] = None, points: int = 0) -> UserBalance:
        """Create the balance row for a newly registered user."""
        if points < 0:
            raise LedgerServiceError("Opening balance cannot be negative")
        if points > MAX_POINTS:
            raise LedgerServiceError(f"Opening balance cannot exceed {MAX_POINTS}")
        if user_id is None:
            user_id = uuid.uuid4()
        data = {"user_id": user_id, "points": points, "created_at": _now()}

        with self.transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM balances WHERE user_id = ?", (str(user_id),)
            ).fetchone()
            if exists:
                raise AccountExistsError(f"User {user_id} already has an account")
            conn.execute(
                "INSERT INTO balances (user_id, points, created_at) VALUES (?, ?, ?)",
                (str(user_id), points, data["created_at"].isoformat()),
            )

        logger.info(f"Opened account for user {user_id} with {points} points")
        return UserBalance(**data)

    def get_account(self, user_id: UUID) -> UserBalance:
        row = self._fetchone("SELECT * FROM balances WHERE user_id = ?", (str(user_id),))
        if row is None:
            raise UserNotFoundError(user_id)
        return UserBalance(**dict(row))

    def get_balance(self, user_id: UUID) -> int:
        return self.get_account(user_id).points

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    def add_reward(
        self,
        title: str,
        points_required: int,
        stock: int = UNLIMITED_STOCK,
        description: str = "",
    ) -> Reward:
        if not 0 < points_required <= MAX_POINTS:
            raise LedgerServiceError(f"points_required must be between 1 and {MAX_POINTS}")
        if not UNLIMITED_STOCK <= stock <= MAX_POINTS:
            raise LedgerServiceError(f"stock must be -1 (unlimited) or between 0 and {MAX_POINTS}")

        data = {
            "id": uuid.uuid4(),
            "title": title,
            "description": description,
            "points_required": points_required,
            "stock": stock,
            "created_at": _now(),
        }
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO rewards (id, title, description, points_required, stock, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(data["id"]), title, description, points_required, stock,
                    data["created_at"].isoformat(),
                ),
            )

        logger.info(f"Added reward {data['id']} '{title}' ({points_required} pts, stock {stock})")
        return Reward(**data)

    def get_reward(self, reward_id: UUID) -> Reward:
        row = self._fetchone("SELECT * FROM rewards WHERE id = ?", (str(reward_id),))
        if row is None:
            raise RewardNotFoundError(reward_id)
        return Reward(**dict(row))

    def list_rewards(self) -> list[Reward]:
        rows = self._fetchall(
            "SELECT * FROM rewards ORDER BY points_required ASC, created_at ASC"
        )
        return [Reward(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def apply_claim(
        self, user_id: UUID, reward_id: UUID, once_per_user: bool = False
    ) -> ClaimRecord:
        """Debit points and stock and record the claim, or change nothing.

        Reward and balance are re-read inside the transaction. Raises
        ClaimCheckFailed when a check fails, before any write.

        Stock is checked before points: a sold-out reward reports
        OUT_OF_STOCK even when the user also lacks the points, never
        INSUFFICIENT_POINTS.
        """
        with self.transaction() as conn:
            reward = conn.execute(
                "SELECT points_required, stock FROM rewards WHERE id = ?", (str(reward_id),)
            ).fetchone()
            if reward is None:
                raise RewardNotFoundError(reward_id)
            balance = conn.execute(
                "SELECT points FROM balances WHERE user_id = ?", (str(user_id),)
            ).fetchone()
            if balance is None:
                raise UserNotFoundError(user_id)

            stock = reward["stock"]
            required = reward["points_required"]
            points = balance["points"]

            if once_per_user and self._has_claimed(conn, user_id, reward_id):
                raise ClaimCheckFailed(RejectionReason.ALREADY_CLAIMED)
            if stock == 0:
                raise ClaimCheckFailed(RejectionReason.OUT_OF_STOCK)
            if points < required:
                raise ClaimCheckFailed(RejectionReason.INSUFFICIENT_POINTS)

            balance_after = points - required
            stock_after = stock - 1 if stock > 0 else stock

            conn.execute(
                "UPDATE balances SET points = ? WHERE user_id = ?",
                (balance_after, str(user_id)),
            )
            if stock > 0:
                conn.execute(
                    "UPDATE rewards SET stock = ? WHERE id = ?", (stock_after, str(reward_id))
                )

            claim = {
                "id": uuid.uuid4(),
                "user_id": user_id,
                "reward_id": reward_id,
                "points_spent": required,
                "balance_after": balance_after,
                "stock_after": stock_after,
                "claimed_at": _now(),
            }
            conn.execute(
                "INSERT INTO claims "
                "(id, user_id, reward_id, points_spent, balance_after, stock_after, claimed_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    str(claim["id"]), str(user_id), str(reward_id), required,
                    balance_after, stock_after, claim["claimed_at"].isoformat(),
                ),
            )

        return ClaimRecord(**claim)

    def _has_claimed(self, conn: sqlite3.Connection, user_id: UUID, reward_id: UUID) -> bool:
        row = conn.execute(
            "SELECT 1 FROM claims WHERE user_id = ? AND reward_id = ? LIMIT 1",
            (str(user_id), str(reward_id)),
        ).fetchone()
        return row is not None

    def list_claims(
        self, user_id: Optional[UUID] = None, reward_id: Optional[UUID] = None
    ) -> list[ClaimRecord]:
        """Claims newest first, optionally filtered by user and/or reward."""
        clauses: list[str] = []
        params: list[Any] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(str(user_id))
        if reward_id is not None:
            clauses.append("reward_id = ?")
            params.append(str(reward_id))

        sql = "SELECT * FROM claims"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY claimed_at DESC, rowid DESC"

        return [ClaimRecord(**dict(row)) for row in self._fetchall(sql, tuple(params))]


def _now() -> datetime:
    return datetime.now(timezone.utc)
