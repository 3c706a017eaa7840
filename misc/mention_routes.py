from __future__ import annotations

import re

from config.defaults import DEFAULT_ASK_MOTEL_PATTERN


def normalize_addressing(content: str, *, bot_user_id: int | None, persona_name: str) -> str:
    """Rewrite a leading bot mention into the persona prefix: '<@id> hi' -> 'chad, hi'."""
    text = (content or "").strip()
    if not bot_user_id:
        return text
    m = re.match(rf"^<@!?\s*{int(bot_user_id)}\s*>[\s,:]*(.*)$", text, flags=re.S)
    if m:
        rest = m.group(1).strip()
        return f"{persona_name}, {rest}" if rest else f"{persona_name},"
    # Mentions elsewhere in the text just get dropped.
    return re.sub(rf"<@!?\s*{int(bot_user_id)}\s*>", persona_name, text).strip()


def is_addressed(text: str, persona_name: str) -> bool:
    return re.match(rf"^{re.escape(persona_name)}(,|\s|$)", (text or "").strip(), flags=re.I) is not None


def strip_address(text: str, persona_name: str) -> str:
    return re.sub(rf"^{re.escape(persona_name)}[,\s]*", "", (text or "").strip(), flags=re.I).strip()


def classify_mention_route(text: str, persona_name: str) -> str:
    ask = DEFAULT_ASK_MOTEL_PATTERN.format(persona=re.escape(persona_name))
    if re.match(ask, (text or "").strip(), flags=re.I):
        return "ask_motel"
    return "addressed" if is_addressed(text, persona_name) else "ambient"
