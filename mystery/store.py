from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mystery.models import SCHEMA_VERSION
from mystery.models import CommunityProgress
from mystery.models import progress_from_legacy


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(progress: CommunityProgress) -> str:
    return json.dumps(progress.to_dict(), ensure_ascii=False, sort_keys=True)


def fetch_progress_payload_sync(conn: sqlite3.Connection, guild_id: int) -> str | None:
    cur = conn.cursor()
    cur.execute(
        "SELECT payload_json FROM mystery_progress WHERE guild_id = ? LIMIT 1",
        (int(guild_id),),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def fetch_progress_sync(conn: sqlite3.Connection, guild_id: int) -> CommunityProgress | None:
    raw = fetch_progress_payload_sync(conn, guild_id)
    if raw is None:
        return None
    return CommunityProgress.from_dict(json.loads(raw))


def get_or_create_progress_sync(conn: sqlite3.Connection, guild_id: int) -> CommunityProgress:
    progress = fetch_progress_sync(conn, guild_id)
    if progress is None:
        progress = CommunityProgress()
        save_progress_sync(conn, guild_id, progress)
    return progress


def save_progress_sync(conn: sqlite3.Connection, guild_id: int, progress: CommunityProgress) -> None:
    now = _utc_now_iso()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO mystery_progress (guild_id, schema_version, payload_json, created_at_utc, updated_at_utc)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(guild_id) DO UPDATE SET
            schema_version = excluded.schema_version,
            payload_json = excluded.payload_json,
            updated_at_utc = excluded.updated_at_utc
        """,
        (int(guild_id), SCHEMA_VERSION, _dumps(progress), now, now),
    )
    conn.commit()


def insert_stage_log_sync(
    conn: sqlite3.Connection,
    *,
    guild_id: int,
    from_stage: int,
    to_stage: int,
    reason: str,
    actor_user_id: int | None,
) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO mystery_stage_log (guild_id, from_stage, to_stage, reason, actor_user_id, created_at_utc)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            int(guild_id),
            int(from_stage),
            int(to_stage),
            str(reason or "unknown"),
            int(actor_user_id) if actor_user_id is not None else None,
            _utc_now_iso(),
        ),
    )
    conn.commit()


def fetch_stage_log_sync(conn: sqlite3.Connection, guild_id: int, limit: int = 20) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, from_stage, to_stage, reason, actor_user_id, created_at_utc
        FROM mystery_stage_log
        WHERE guild_id = ?
        ORDER BY id DESC
        LIMIT ?
        """,
        (int(guild_id), max(1, min(int(limit), 200))),
    )
    out: list[dict[str, Any]] = []
    for row_id, from_stage, to_stage, reason, actor, created in cur.fetchall():
        out.append(
            {
                "id": int(row_id),
                "from_stage": int(from_stage),
                "to_stage": int(to_stage),
                "reason": str(reason),
                "actor_user_id": int(actor) if actor is not None else None,
                "created_at_utc": str(created),
            }
        )
    return out


def import_legacy_state_sync(conn: sqlite3.Connection, path: str | Path) -> list[int]:
    """
    Import guilds from an old state.json blob. Guilds that already have a row
    are left alone, so running this on every boot is safe.
    """
    p = Path(path)
    if not p.exists():
        return []
    payload = json.loads(p.read_text(encoding="utf-8") or "{}")
    if not isinstance(payload, dict):
        raise RuntimeError(f"Legacy state file must contain a top-level mapping: {p}")

    imported: list[int] = []
    for raw_guild_id, entry in payload.items():
        if not isinstance(entry, dict):
            continue
        try:
            guild_id = int(raw_guild_id)
        except (TypeError, ValueError):
            continue
        if fetch_progress_payload_sync(conn, guild_id) is not None:
            continue
        save_progress_sync(conn, guild_id, progress_from_legacy(entry))
        imported.append(guild_id)
    return imported
