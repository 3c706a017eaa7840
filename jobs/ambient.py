from __future__ import annotations

import asyncio
import random


def pick_ambient_channel(guild):
    channel = getattr(guild, "system_channel", None)
    me = getattr(guild, "me", None)
    if channel is not None and (me is None or channel.permissions_for(me).send_messages):
        return channel
    for candidate in getattr(guild, "text_channels", []) or []:
        if me is None or candidate.permissions_for(me).send_messages:
            return candidate
    return None


async def post_ambient_tick(*, bot, flavor_service, chance: float, rng: random.Random | None = None) -> int:
    roll = rng or random
    posted = 0
    for guild in list(getattr(bot, "guilds", []) or []):
        if roll.random() >= chance:
            continue
        line = flavor_service.ambient_line()
        if not line:
            return posted
        channel = pick_ambient_channel(guild)
        if channel is None:
            continue
        try:
            await channel.send(line)
            posted += 1
        except Exception as e:
            print(f"[Ambient] post failed guild={guild.id}: {e}")
    return posted


async def ambient_loop(
    *,
    bot,
    flavor_service,
    interval_seconds: int,
    chance: float,
) -> None:
    while True:
        await asyncio.sleep(max(60, int(interval_seconds)))
        try:
            await post_ambient_tick(bot=bot, flavor_service=flavor_service, chance=chance)
        except Exception as e:
            print(f"[Ambient] loop error: {e}")
