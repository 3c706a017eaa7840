from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_mystery import register as register_mystery
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    db_lock,
    db_conn,
    send_chunked,
    allowed_channel_ids: set[int],
    persona_name: str,
    user_is_owner,
    mystery_service,
    flavor_service,
    touch_guest_func,
    format_guest_for_llm,
    fetch_stage_log_sync,
    count_guests_sync,
    client,
    openai_model: str,
    generate_fallback_reply,
    ambient_enabled: bool,
    ambient_loop_func,
    legacy_state_path: str | None,
    import_legacy_state_func,
) -> None:
    register_mystery(
        bot,
        deps=CommandDeps(
            db_lock=db_lock,
            db_conn=db_conn,
            send_chunked=send_chunked,
            mystery_service=mystery_service,
            fetch_stage_log_sync=fetch_stage_log_sync,
            count_guests_sync=count_guests_sync,
        ),
        gates=CommandGates(user_is_owner=user_is_owner),
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            send_chunked=send_chunked,
            allowed_channel_ids=allowed_channel_ids,
            persona_name=persona_name,
            mystery_service=mystery_service,
            flavor_service=flavor_service,
            touch_guest_func=touch_guest_func,
            format_guest_for_llm=format_guest_for_llm,
            client=client,
            openai_model=openai_model,
            generate_fallback_reply=generate_fallback_reply,
        ),
        boot=RuntimeBootDeps(
            ambient_enabled=ambient_enabled,
            ambient_loop_func=ambient_loop_func,
            legacy_state_path=legacy_state_path,
            import_legacy_state_func=import_legacy_state_func,
        ),
    )
