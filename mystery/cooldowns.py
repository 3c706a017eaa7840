from __future__ import annotations

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

from mystery.models import CommunityProgress


def resolve_tz(timezone_name: str) -> ZoneInfo:
    try:
        return ZoneInfo((timezone_name or "UTC").strip() or "UTC")
    except Exception:
        print(f"[CFG] invalid timezone {timezone_name!r}; falling back to UTC")
        return ZoneInfo("UTC")


def now_local(tz: ZoneInfo, now: datetime | None = None) -> datetime:
    base = now or datetime.now(timezone.utc)
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    return base.astimezone(tz)


def today_local_str(tz: ZoneInfo, now: datetime | None = None) -> str:
    return now_local(tz, now).date().isoformat()


def has_daily_cooldown(progress: CommunityProgress, key: str, tz: ZoneInfo, now: datetime | None = None) -> bool:
    return progress.cooldowns.get(key) == today_local_str(tz, now)


def set_daily_cooldown(progress: CommunityProgress, key: str, tz: ZoneInfo, now: datetime | None = None) -> None:
    # Caller persists.
    progress.cooldowns[key] = today_local_str(tz, now)


def now_in_window(
    window: tuple[int, int, int, int],
    tz: ZoneInfo,
    now: datetime | None = None,
) -> bool:
    sh, sm, eh, em = window
    local = now_local(tz, now)
    # Minute granularity, both bounds inclusive.
    current = time(local.hour, local.minute)
    start = time(int(sh), int(sm))
    end = time(int(eh), int(em))
    if start <= end:
        return start <= current <= end
    # Window wraps past midnight.
    return current >= start or current <= end
