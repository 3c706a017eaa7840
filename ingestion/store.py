from __future__ import annotations

import sqlite3
from typing import Any


def _row_to_guest(row) -> dict[str, Any] | None:
    if row is None:
        return None
    user_id, display_name, first_seen, last_seen, message_count = row
    return {
        "user_id": int(user_id),
        "display_name": str(display_name),
        "first_seen_utc": str(first_seen),
        "last_seen_utc": str(last_seen),
        "message_count": int(message_count or 0),
    }


def fetch_guest_sync(conn: sqlite3.Connection, user_id: int) -> dict[str, Any] | None:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT user_id, display_name, first_seen_utc, last_seen_utc, message_count
        FROM guestbook
        WHERE user_id = ?
        LIMIT 1
        """,
        (int(user_id),),
    )
    return _row_to_guest(cur.fetchone())


def touch_guest_sync(
    conn: sqlite3.Connection,
    *,
    user_id: int,
    display_name: str,
    seen_at_utc: str,
) -> tuple[dict[str, Any], bool]:
    """Record one message from a user. Returns (guest, is_new)."""
    existing = fetch_guest_sync(conn, user_id)
    cur = conn.cursor()
    if existing is None:
        cur.execute(
            """
            INSERT INTO guestbook (user_id, display_name, first_seen_utc, last_seen_utc, message_count)
            VALUES (?, ?, ?, ?, 1)
            """,
            (int(user_id), display_name, seen_at_utc, seen_at_utc),
        )
    else:
        cur.execute(
            """
            UPDATE guestbook
            SET display_name = ?, last_seen_utc = ?, message_count = message_count + 1
            WHERE user_id = ?
            """,
            (display_name, seen_at_utc, int(user_id)),
        )
    conn.commit()
    guest = fetch_guest_sync(conn, user_id)
    if guest is None:
        raise RuntimeError("Failed to create/fetch guestbook entry")
    return guest, existing is None


def count_guests_sync(conn: sqlite3.Connection) -> int:
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM guestbook")
    row = cur.fetchone()
    return int(row[0]) if row else 0
