from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    send_chunked: Callable
    allowed_channel_ids: set[int]
    persona_name: str

    # mystery + flavor
    mystery_service: Any
    flavor_service: Any

    # guestbook
    touch_guest_func: Callable
    format_guest_for_llm: Callable

    # llm (client is None when no API key is configured)
    client: Any
    openai_model: str
    generate_fallback_reply: Callable


@dataclass(frozen=True)
class RuntimeBootDeps:
    ambient_enabled: bool
    ambient_loop_func: Callable
    legacy_state_path: str | None
    import_legacy_state_func: Callable
