"""SQLite persistence layer for SocketChat.

Stores users, groups, group memberships and messages with the stdlib
``sqlite3`` module. The connection is shared and guarded by a lock; each
public coroutine runs its blocking body in a worker thread so a slow write
stalls only the event that issued it.

The DB file location is controlled by Config.SQLITE_DB_FILE.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from SocketChat.core.storage.models import ChatMessage, Group, User, new_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  first_name TEXT NOT NULL,
  last_name TEXT NOT NULL,
  email TEXT UNIQUE NOT NULL,
  is_verified INTEGER NOT NULL DEFAULT 0,
  role TEXT NOT NULL DEFAULT 'user',
  created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_groups (
  id TEXT PRIMARY KEY,
  name TEXT UNIQUE NOT NULL,
  description TEXT NOT NULL DEFAULT '',
  creator_id TEXT NOT NULL REFERENCES users(id),
  created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS group_members (
  group_id TEXT NOT NULL REFERENCES chat_groups(id) ON DELETE CASCADE,
  user_id TEXT NOT NULL REFERENCES users(id),
  joined_at REAL NOT NULL,
  PRIMARY KEY (group_id, user_id)
);

-- A message goes to exactly one of: a user, a group.
CREATE TABLE IF NOT EXISTS messages (
  id TEXT PRIMARY KEY,
  sender_id TEXT NOT NULL REFERENCES users(id),
  recipient_id TEXT REFERENCES users(id),
  group_id TEXT REFERENCES chat_groups(id) ON DELETE CASCADE,
  content TEXT NOT NULL,
  is_read INTEGER NOT NULL DEFAULT 0,
  created_at REAL NOT NULL,
  CHECK ((recipient_id IS NULL) <> (group_id IS NULL))
);

CREATE INDEX IF NOT EXISTS idx_messages_private ON messages(sender_id, recipient_id, created_at);
CREATE INDEX IF NOT EXISTS idx_messages_group ON messages(group_id, created_at);
"""


class SQLiteChatStore:
    """A small SQLite-backed chat repository."""

    def __init__(self, db_path: str):
        self.db_path = db_path if db_path == ":memory:" else str(Path(db_path))
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        logger.info("SQLite store ready at %s", self.db_path)

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)

    # --------------------------- rows ---------------------------
    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
            email=str(row["email"]),
            is_verified=bool(row["is_verified"]),
            role=str(row["role"]),
            created_at=float(row["created_at"]),
        )

    @staticmethod
    def _message_from_row(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(
            id=str(row["id"]),
            sender_id=str(row["sender_id"]),
            content=str(row["content"]),
            recipient_id=row["recipient_id"],
            group_id=row["group_id"],
            is_read=bool(row["is_read"]),
            created_at=float(row["created_at"]),
        )

    def _group_locked(self, group_id: str) -> Optional[Group]:
        row = self._conn.execute("SELECT * FROM chat_groups WHERE id=?", (group_id,)).fetchone()
        if row is None:
            return None
        members = self._conn.execute(
            "SELECT user_id FROM group_members WHERE group_id=? ORDER BY joined_at, rowid",
            (group_id,),
        ).fetchall()
        return Group(
            id=str(row["id"]),
            name=str(row["name"]),
            creator_id=str(row["creator_id"]),
            description=str(row["description"] or ""),
            members=[str(m["user_id"]) for m in members],
            created_at=float(row["created_at"]),
        )

    # --------------------------- users ---------------------------
    def _create_user(self, first_name: str, last_name: str, email: str, is_verified: bool, role: str) -> User:
        user = User(new_id(), first_name, last_name, email.strip().lower(), is_verified=is_verified, role=role)
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO users(id, first_name, last_name, email, is_verified, role, created_at) "
                    "VALUES(?,?,?,?,?,?,?)",
                    (user.id, user.first_name, user.last_name, user.email,
                     1 if user.is_verified else 0, user.role, user.created_at),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as e:
                raise ValueError(f"User with email {user.email} already exists") from e
        return user

    async def create_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        is_verified: bool = True,
        role: str = "user",
    ) -> User:
        return await self._run(self._create_user, first_name, last_name, email, is_verified, role)

    def _get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
        return None if row is None else self._user_from_row(row)

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self._run(self._get_user, user_id)

    def _list_users(self, exclude: Optional[str]) -> List[User]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM users WHERE id IS NOT ? ORDER BY first_name, last_name",
                (exclude,),
            ).fetchall()
        return [self._user_from_row(r) for r in rows]

    async def list_users(self, exclude: Optional[str] = None) -> List[User]:
        return await self._run(self._list_users, exclude)

    def _page_users(self, offset: int, limit: int) -> List[User]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM users ORDER BY created_at, rowid LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [self._user_from_row(r) for r in rows]

    async def page_users(self, offset: int = 0, limit: int = 10) -> List[User]:
        """Users in sign-up order."""
        return await self._run(self._page_users, offset, limit)

    def _recent_users(self, limit: int) -> List[User]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM users ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._user_from_row(r) for r in rows]

    async def recent_users(self, limit: int = 5) -> List[User]:
        return await self._run(self._recent_users, limit)

    def _update_user(
        self,
        user_id: str,
        first_name: Optional[str],
        last_name: Optional[str],
        role: Optional[str],
    ) -> Optional[User]:
        changes = [(col, value) for col, value in
                   (("first_name", first_name), ("last_name", last_name), ("role", role))
                   if value is not None]
        with self._lock:
            if changes:
                # column names come from the fixed tuple above
                assignments = ", ".join(f"{col}=?" for col, _ in changes)
                self._conn.execute(
                    f"UPDATE users SET {assignments} WHERE id=?",
                    (*[value for _, value in changes], user_id),
                )
                self._conn.commit()
            row = self._conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
        return None if row is None else self._user_from_row(row)

    async def update_user(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Optional[User]:
        return await self._run(self._update_user, user_id, first_name, last_name, role)

    def _delete_user(self, user_id: str) -> bool:
        with self._lock:
            if self._conn.execute("SELECT 1 FROM users WHERE id=?", (user_id,)).fetchone() is None:
                return False
            try:
                owned = [str(r["id"]) for r in self._conn.execute(
                    "SELECT id FROM chat_groups WHERE creator_id=?", (user_id,)
                ).fetchall()]
                for group_id in owned:
                    self._conn.execute("DELETE FROM messages WHERE group_id=?", (group_id,))
                    self._conn.execute("DELETE FROM group_members WHERE group_id=?", (group_id,))
                    self._conn.execute("DELETE FROM chat_groups WHERE id=?", (group_id,))
                self._conn.execute(
                    "DELETE FROM messages WHERE sender_id=? OR recipient_id=?", (user_id, user_id)
                )
                self._conn.execute("DELETE FROM group_members WHERE user_id=?", (user_id,))
                self._conn.execute("DELETE FROM users WHERE id=?", (user_id,))
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return True

    async def delete_user(self, user_id: str) -> bool:
        """
        Remove a user with their messages and memberships.

        Groups the user created go too, along with their history.
        """
        return await self._run(self._delete_user, user_id)

    def _stats(self) -> Dict[str, int]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT
                  (SELECT COUNT(*) FROM users) AS users,
                  (SELECT COUNT(*) FROM users WHERE role='admin') AS admins,
                  (SELECT COUNT(*) FROM users WHERE is_verified=1) AS verified_users,
                  (SELECT COUNT(*) FROM chat_groups) AS groups_,
                  (SELECT COUNT(*) FROM messages) AS messages
                """
            ).fetchone()
        return {
            "users": int(row["users"]),
            "admins": int(row["admins"]),
            "verifiedUsers": int(row["verified_users"]),
            "groups": int(row["groups_"]),
            "messages": int(row["messages"]),
        }

    async def stats(self) -> Dict[str, int]:
        return await self._run(self._stats)

    # --------------------------- groups ---------------------------
    def _create_group(self, name: str, creator_id: str, description: str) -> Group:
        group_id = new_id()
        now = time.time()
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO chat_groups(id, name, description, creator_id, created_at) VALUES(?,?,?,?,?)",
                    (group_id, name, description or "", creator_id, now),
                )
                self._conn.execute(
                    "INSERT INTO group_members(group_id, user_id, joined_at) VALUES(?,?,?)",
                    (group_id, creator_id, now),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                raise ValueError(f"Group {name} already exists") from e
            return self._group_locked(group_id)

    async def create_group(self, name: str, creator_id: str, description: str = "") -> Group:
        return await self._run(self._create_group, name, creator_id, description)

    def _get_group(self, group_id: str) -> Optional[Group]:
        with self._lock:
            return self._group_locked(group_id)

    async def get_group(self, group_id: str) -> Optional[Group]:
        return await self._run(self._get_group, group_id)

    def _get_group_by_name(self, name: str) -> Optional[Group]:
        with self._lock:
            row = self._conn.execute("SELECT id FROM chat_groups WHERE name=?", (name,)).fetchone()
            return None if row is None else self._group_locked(str(row["id"]))

    async def get_group_by_name(self, name: str) -> Optional[Group]:
        return await self._run(self._get_group_by_name, name)

    def _list_groups(self) -> List[Group]:
        with self._lock:
            rows = self._conn.execute("SELECT id FROM chat_groups ORDER BY created_at, rowid").fetchall()
            return [self._group_locked(str(r["id"])) for r in rows]

    async def list_groups(self) -> List[Group]:
        return await self._run(self._list_groups)

    def _add_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        with self._lock:
            if self._group_locked(group_id) is None:
                return None
            self._conn.execute(
                "INSERT OR IGNORE INTO group_members(group_id, user_id, joined_at) VALUES(?,?,?)",
                (group_id, user_id, time.time()),
            )
            self._conn.commit()
            return self._group_locked(group_id)

    async def add_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        return await self._run(self._add_group_member, group_id, user_id)

    def _remove_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        with self._lock:
            group = self._group_locked(group_id)
            if group is None:
                return None
            if user_id == group.creator_id:
                return group
            self._conn.execute(
                "DELETE FROM group_members WHERE group_id=? AND user_id=?",
                (group_id, user_id),
            )
            self._conn.commit()
            return self._group_locked(group_id)

    async def remove_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        return await self._run(self._remove_group_member, group_id, user_id)

    # --------------------------- messages ---------------------------
    def _create_message(
        self,
        sender_id: str,
        content: str,
        recipient_id: Optional[str],
        group_id: Optional[str],
    ) -> ChatMessage:
        message = ChatMessage(new_id(), sender_id, content, recipient_id=recipient_id, group_id=group_id)
        with self._lock:
            self._conn.execute(
                "INSERT INTO messages(id, sender_id, recipient_id, group_id, content, is_read, created_at) "
                "VALUES(?,?,?,?,?,0,?)",
                (message.id, message.sender_id, message.recipient_id, message.group_id,
                 message.content, message.created_at),
            )
            self._conn.commit()
        return message

    async def create_message(
        self,
        sender_id: str,
        content: str,
        recipient_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> ChatMessage:
        return await self._run(self._create_message, sender_id, content, recipient_id, group_id)

    def _get_message(self, message_id: str) -> Optional[ChatMessage]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM messages WHERE id=?", (message_id,)).fetchone()
        return None if row is None else self._message_from_row(row)

    async def get_message(self, message_id: str) -> Optional[ChatMessage]:
        return await self._run(self._get_message, message_id)

    def _private_history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM messages
                WHERE (sender_id=? AND recipient_id=?) OR (sender_id=? AND recipient_id=?)
                ORDER BY created_at, rowid
                """,
                (user_a, user_b, user_b, user_a),
            ).fetchall()
        return [self._message_from_row(r) for r in rows]

    async def private_history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        return await self._run(self._private_history, user_a, user_b)

    def _group_history(self, group_id: str) -> List[ChatMessage]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM messages WHERE group_id=? ORDER BY created_at, rowid",
                (group_id,),
            ).fetchall()
        return [self._message_from_row(r) for r in rows]

    async def group_history(self, group_id: str) -> List[ChatMessage]:
        return await self._run(self._group_history, group_id)

    def _mark_read(self, sender_id: str, recipient_id: str) -> int:
        with self._lock:
            cur = self._conn.execute(
                "UPDATE messages SET is_read=1 WHERE sender_id=? AND recipient_id=? AND is_read=0",
                (sender_id, recipient_id),
            )
            self._conn.commit()
            return cur.rowcount

    async def mark_read(self, sender_id: str, recipient_id: str) -> int:
        return await self._run(self._mark_read, sender_id, recipient_id)

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.info("SQLite store at %s closed", self.db_path)
