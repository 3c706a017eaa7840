from __future__ import annotations

import discord


def message_in_community(message: discord.Message, allowed_channel_ids: set[int]) -> bool:
    # The mystery is per guild; DMs and other bots never reach it.
    if getattr(message, "guild", None) is None:
        return False
    if getattr(message.author, "bot", False):
        return False
    if not allowed_channel_ids:
        return True

    channel_id = int(getattr(message.channel, "id", 0) or 0)
    if channel_id in allowed_channel_ids:
        return True
    if isinstance(message.channel, discord.Thread) and message.channel.parent:
        return int(message.channel.parent.id) in allowed_channel_ids
    return False
