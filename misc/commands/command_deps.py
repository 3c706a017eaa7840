from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    db_lock: Any = None
    db_conn: Any = None
    send_chunked: Callable | None = None
    mystery_service: Any = None
    fetch_stage_log_sync: Callable | None = None
    count_guests_sync: Callable | None = None


@dataclass(frozen=True)
class CommandGates:
    user_is_owner: Callable[[Any], bool] = _default_false
