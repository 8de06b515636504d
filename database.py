# database.py
import asyncio
import logging
import sqlite3
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from config import DATABASE_FILE, STORAGE_TIMEOUT
from errors import NotFound, StorageError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

INTEREST_SEPARATOR = ","


def _join_interests(interests: Sequence[str]) -> str:
    return INTEREST_SEPARATOR.join(interests)


def _split_interests(stored: Optional[str]) -> List[str]:
    if not stored:
        return []
    return stored.split(INTEREST_SEPARATOR)


def _check_encodable(value: str, field: str) -> None:
    # sqlite binds text as UTF-8; lone surrogates would blow up inside the driver
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValidationError(f"{field} is not valid UTF-8 text") from None


def normalize_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    """Order a pair of identities so (a, b) and (b, a) map to the same row."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


class Database:
    """
    Interest store and match record sink backed by sqlite.

    Every public method is a coroutine: the blocking sqlite work runs in a
    worker thread and is bounded by `timeout` seconds. Any sqlite failure or
    timeout is reported as StorageError; nothing is retried here.
    """

    def __init__(self, path: str = DATABASE_FILE, timeout: float = STORAGE_TIMEOUT):
        self.path = path
        self.timeout = timeout

    def get_conn(self):
        return sqlite3.connect(self.path, timeout=self.timeout, check_same_thread=False)

    async def _run(self, op: str, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Storage call %s timed out after %.1fs", op, self.timeout)
            raise StorageError(f"{op} timed out") from None
        except sqlite3.Error as exc:
            logger.error("Storage call %s failed: %s", op, exc)
            raise StorageError(f"{op} failed: {exc}") from exc

    # ----------------------
    # Schema
    # ----------------------
    def _init_db(self) -> None:
        conn = self.get_conn()
        try:
            c = conn.cursor()
            c.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    interests TEXT NOT NULL
                )
            """)
            c.execute("""
                CREATE TABLE IF NOT EXISTS matches (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user1 TEXT NOT NULL REFERENCES users(user_id),
                    user2 TEXT NOT NULL REFERENCES users(user_id),
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (user1, user2),
                    CHECK (user1 < user2)
                )
            """)
            conn.commit()
        finally:
            conn.close()

    async def init_db(self) -> None:
        """Create the users and matches tables if they don't exist. Call this once at app startup."""
        await self._run("init_db", self._init_db)

    # ----------------------
    # Interests
    # ----------------------
    def _upsert(self, user_id: str, interests: str) -> None:
        conn = self.get_conn()
        try:
            c = conn.cursor()
            c.execute("""
                INSERT INTO users (user_id, interests)
                VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    interests=excluded.interests
            """, (user_id, interests))
            conn.commit()
        finally:
            conn.close()

    async def upsert_interests(self, user_id: str, interests: Sequence[str]) -> None:
        """
        Insert a user or replace their interests. Last write wins.
        'interests' must already be normalized tokens; they are stored comma-joined.
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("userId is required")
        _check_encodable(user_id, "userId")
        if not interests:
            raise ValidationError("interests must not be empty")
        for token in interests:
            if not isinstance(token, str) or not token or INTEREST_SEPARATOR in token:
                raise ValidationError(f"invalid interest token: {token!r}")
            _check_encodable(token, "interests")
        await self._run("upsert_interests", self._upsert, user_id, _join_interests(interests))

    def _get(self, user_id: str) -> Optional[Tuple[str]]:
        conn = self.get_conn()
        try:
            c = conn.cursor()
            c.execute("SELECT interests FROM users WHERE user_id = ?", (user_id,))
            return c.fetchone()
        finally:
            conn.close()

    async def get_interests(self, user_id: str) -> List[str]:
        _check_encodable(user_id, "userId")
        row = await self._run("get_interests", self._get, user_id)
        if row is None:
            raise NotFound(f"unknown user: {user_id}")
        return _split_interests(row[0])

    def _list_except(self, user_id: str) -> List[Tuple[str, str]]:
        conn = self.get_conn()
        try:
            c = conn.cursor()
            c.execute(
                "SELECT user_id, interests FROM users WHERE user_id != ? ORDER BY user_id",
                (user_id,),
            )
            return c.fetchall()
        finally:
            conn.close()

    async def list_interests_except(self, user_id: str) -> List[Tuple[str, List[str]]]:
        """Return every other user as (user_id, interests), ordered by user id."""
        _check_encodable(user_id, "userId")
        rows = await self._run("list_interests_except", self._list_except, user_id)
        return [(other_id, _split_interests(stored)) for other_id, stored in rows]

    # ----------------------
    # Match records
    # ----------------------
    def _insert_match(self, user1: str, user2: str) -> bool:
        conn = self.get_conn()
        try:
            c = conn.cursor()
            c.execute(
                "INSERT OR IGNORE INTO matches (user1, user2) VALUES (?, ?)",
                (user1, user2),
            )
            conn.commit()
            return c.rowcount == 1
        finally:
            conn.close()

    async def insert_match_if_absent(self, user_a: str, user_b: str) -> bool:
        """Record the unordered pair once. Returns False when it was already recorded."""
        if not user_a or not user_b:
            raise ValidationError("both user ids are required")
        if user_a == user_b:
            raise ValidationError("a user cannot be matched with themselves")
        _check_encodable(user_a, "userId")
        _check_encodable(user_b, "userId")
        user1, user2 = normalize_pair(user_a, user_b)
        return await self._run("insert_match_if_absent", self._insert_match, user1, user2)

    def _list_matches(self, user_id: str) -> List[Tuple[str]]:
        conn = self.get_conn()
        try:
            c = conn.cursor()
            c.execute("""
                SELECT CASE WHEN user1 = ? THEN user2 ELSE user1 END
                FROM matches
                WHERE user1 = ? OR user2 = ?
                ORDER BY id
            """, (user_id, user_id, user_id))
            return c.fetchall()
        finally:
            conn.close()

    async def list_matches(self, user_id: str) -> List[str]:
        """Return the ids of every user already paired with `user_id`, oldest first."""
        _check_encodable(user_id, "userId")
        rows = await self._run("list_matches", self._list_matches, user_id)
        return [row[0] for row in rows]
