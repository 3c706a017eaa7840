from __future__ import annotations

import os
import re
from typing import Any, Callable


def parse_id_set(raw: str | None) -> set[int]:
    if not raw:
        return set()
    out: set[int] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if not tok:
            continue
        if re.fullmatch(r"\d{8,22}", tok):
            out.add(int(tok))
    return out


def env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_float(name: str, default: float) -> float:
    try:
        return float((os.getenv(name) or "").strip() or default)
    except ValueError:
        print(f"[CFG] invalid {name}={os.getenv(name)!r}; using {default}")
        return float(default)


def env_int(name: str, default: int) -> int:
    try:
        return int((os.getenv(name) or "").strip() or default)
    except ValueError:
        print(f"[CFG] invalid {name}={os.getenv(name)!r}; using {default}")
        return int(default)


def build_owner_check(owner_user_ids: set[int]) -> Callable[[Any], bool]:
    def user_is_owner(user) -> bool:
        uid = int(getattr(user, "id", 0) or 0)
        if uid and uid in owner_user_ids:
            return True
        if owner_user_ids:
            return False
        # Without an explicit owner list, guild administrators count.
        perms = getattr(user, "guild_permissions", None)
        return bool(getattr(perms, "administrator", False))

    return user_is_owner
