from __future__ import annotations

import asyncio

from controller.prompt_assembly import build_chat_messages
from controller.prompt_assembly import build_stage_flavor

FALLBACK_ERROR_REPLY = "the motel's switchboard is buzzing. try me again in a sec."
MAX_PROMPT_CHARS = 1900


async def generate_fallback_reply(
    *,
    client,
    openai_model: str,
    persona_prompt: str,
    guest_block: str | None,
    stage_number: int,
    previous_stage_response: str | None,
    prompt: str,
) -> str:
    messages = build_chat_messages(
        persona_prompt=persona_prompt,
        guest_block=guest_block,
        stage_flavor=build_stage_flavor(stage_number, previous_stage_response),
        safe_prompt=prompt,
        max_chars=MAX_PROMPT_CHARS,
    )
    try:
        resp = await asyncio.to_thread(
            client.chat.completions.create,
            model=openai_model,
            messages=messages,
        )
        reply = (resp.choices[0].message.content or "").strip()
    except Exception as e:
        print(f"[OpenAI] Error: {e}")
        return FALLBACK_ERROR_REPLY
    return reply or "…"
