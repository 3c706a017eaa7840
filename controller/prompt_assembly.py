from __future__ import annotations


def build_stage_flavor(stage_number: int, stage_response: str | None) -> str:
    # Only the last thing the guests heard; never the triggers.
    if not stage_response:
        return f"The mystery is at stage {int(stage_number)}; nothing has been revealed yet."
    return (
        f"The mystery is at stage {int(stage_number)}. The most recent story beat was:\n"
        f"{stage_response}"
    )


def build_chat_messages(
    *,
    persona_prompt: str,
    guest_block: str | None,
    stage_flavor: str | None,
    safe_prompt: str,
    max_chars: int,
) -> list[dict]:
    msgs = [{"role": "system", "content": (persona_prompt or "")[:max_chars]}]
    if guest_block:
        msgs.append({"role": "system", "content": f"Who is talking:\n{guest_block}"[:max_chars]})
    if stage_flavor:
        msgs.append({"role": "system", "content": stage_flavor[:max_chars]})
    msgs.append({"role": "user", "content": (safe_prompt or "")[:max_chars]})
    return msgs
