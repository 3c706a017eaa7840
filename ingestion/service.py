from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any


def best_display_name(user_obj) -> str:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(user_obj, attr, None)
        if value:
            return str(value)
    return "Unknown Guest"


async def touch_guest(
    message: Any,
    *,
    db_lock,
    db_conn,
    touch_guest_sync,
) -> tuple[dict[str, Any], bool]:
    seen_at = message.created_at.isoformat() if getattr(message, "created_at", None) else datetime.now(timezone.utc).isoformat()
    async with db_lock:
        guest, is_new = await asyncio.to_thread(
            touch_guest_sync,
            db_conn,
            user_id=int(message.author.id),
            display_name=best_display_name(message.author),
            seen_at_utc=seen_at,
        )
    if is_new:
        print(f"[Guestbook] new guest {guest['display_name']} ({guest['user_id']})")
    return guest, is_new


def format_guest_for_llm(guest: dict[str, Any] | None, *, is_new: bool) -> str:
    if not guest:
        return ""
    lines = [
        f"Guest: {guest.get('display_name') or 'Unknown Guest'}",
        f"First checked in: {guest.get('first_seen_utc') or 'unknown'}",
        f"Messages in the motel: {int(guest.get('message_count') or 0)}",
    ]
    if is_new:
        lines.append("This is their first message here; greet them like a new arrival.")
    return "\n".join(lines)
