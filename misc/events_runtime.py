from __future__ import annotations

import asyncio

import discord
from discord.ext import commands
from misc.discord_gates import message_in_community
from misc.mention_routes import classify_mention_route
from misc.mention_routes import normalize_addressing
from misc.mention_routes import strip_address
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


async def handle_community_message(message: discord.Message, *, deps: RuntimeDeps, bot_user_id: int | None) -> str:
    """
    Run one guild message through the bot's layers and return what handled it:
    ask_motel, a mystery action kind, roast, fallback, or noop.
    """
    guest, is_new = await deps.touch_guest_func(message)

    text = normalize_addressing(message.content or "", bot_user_id=bot_user_id, persona_name=deps.persona_name)
    route = classify_mention_route(text, deps.persona_name)

    roasted = await deps.flavor_service.maybe_roast(message, text)

    if route == "ask_motel" and await deps.flavor_service.ask_the_motel(message):
        return "ask_motel"

    action = await deps.mystery_service.handle_message(message, text=text, addressed=route != "ambient")
    if action.replied:
        return action.kind
    if roasted:
        return "roast"
    if route == "ambient" or deps.client is None:
        return action.kind

    brain = deps.mystery_service.brain()
    previous = brain.stage(action.stage_after - 1)
    reply = await deps.generate_fallback_reply(
        client=deps.client,
        openai_model=deps.openai_model,
        persona_prompt=brain.persona_prompt,
        guest_block=deps.format_guest_for_llm(guest, is_new=is_new),
        stage_number=action.stage_after,
        previous_stage_response=previous.response if previous is not None else None,
        prompt=strip_address(text, deps.persona_name) or "(they just said your name)",
    )
    await deps.send_chunked(message.channel, reply)
    return "fallback"


def is_command_message(bot, content: str, prefix: str = "!") -> bool:
    text = (content or "").lstrip()
    if not text.startswith(prefix):
        return False
    name = text[len(prefix):].split(maxsplit=1)
    return bool(name) and bot.get_command(name[0]) is not None


async def dispatch_guild_message(bot, message: discord.Message, *, deps: RuntimeDeps) -> str:
    # Every guild message counts toward the finale, commands and fortunes included.
    await deps.mystery_service.record_participant(int(message.guild.id), int(message.author.id))

    if is_command_message(bot, message.content):
        await bot.process_commands(message)
        return "command"

    return await handle_community_message(
        message,
        deps=deps,
        bot_user_id=int(bot.user.id) if bot.user else None,
    )


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Chad is online as {bot.user}")

        if boot.legacy_state_path and not getattr(bot, "_legacy_imported", False):
            try:
                imported = await boot.import_legacy_state_func(boot.legacy_state_path)
                print(f"[Mystery] legacy state import: {len(imported)} guild(s) from {boot.legacy_state_path}")
            except Exception as e:
                print(f"[Mystery] legacy state import failed: {e}")
            bot._legacy_imported = True

        if boot.ambient_enabled and not getattr(bot, "_ambient_task", None):
            bot._ambient_task = asyncio.create_task(boot.ambient_loop_func())
            print("[Ambient] loop started")

    @bot.event
    async def on_message(message: discord.Message):
        if not message_in_community(message, deps.allowed_channel_ids):
            return

        try:
            await dispatch_guild_message(bot, message, deps=deps)
        except Exception as e:
            print(f"[Mystery] handler error guild={message.guild.id}: {e}")

    @bot.event
    async def on_raw_reaction_add(payload: discord.RawReactionActionEvent):
        if payload.guild_id is None:
            return
        own_id = int(bot.user.id) if bot.user else None
        user_is_bot = bool(getattr(payload.member, "bot", False)) or int(payload.user_id) == own_id

        async def fetch_message():
            channel = bot.get_channel(payload.channel_id)
            if channel is None:
                channel = await bot.fetch_channel(payload.channel_id)
            return await channel.fetch_message(payload.message_id)

        try:
            await deps.mystery_service.handle_reaction(
                guild_id=int(payload.guild_id),
                message_id=int(payload.message_id),
                emoji=str(payload.emoji),
                user_is_bot=user_is_bot,
                fetch_message=fetch_message,
            )
        except Exception as e:
            print(f"[Mystery] reaction handler error guild={payload.guild_id}: {e}")
