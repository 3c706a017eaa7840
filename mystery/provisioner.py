from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import discord

from config.defaults import DEFAULT_REWARD_ROLE_COLOUR


@dataclass(slots=True)
class FinaleResult:
    role: Any = None
    channel: Any = None
    granted: int = 0
    failed: int = 0


class RewardProvisioner:
    """Creates the finale reward role and its private room, then hands out the role."""

    def __init__(
        self,
        *,
        role_name: str,
        channel_name: str,
        role_colour: int = DEFAULT_REWARD_ROLE_COLOUR,
    ) -> None:
        self.role_name = (role_name or "").strip()
        self.channel_name = (channel_name or "").strip()
        self.role_colour = int(role_colour)

    async def ensure_reward_role(self, guild) -> Any:
        role = discord.utils.get(guild.roles, name=self.role_name)
        if role is not None:
            return role
        role = await guild.create_role(
            name=self.role_name,
            colour=discord.Colour(self.role_colour),
            reason="Mystery reward role",
        )
        print(f"[Mystery] created reward role {self.role_name!r} guild={guild.id}")
        return role

    async def ensure_restricted_channel(self, guild, role) -> Any:
        channel = discord.utils.get(guild.text_channels, name=self.channel_name)
        if channel is not None:
            return channel
        overwrites = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            role: discord.PermissionOverwrite(view_channel=True, send_messages=True, read_message_history=True),
        }
        channel = await guild.create_text_channel(
            self.channel_name,
            overwrites=overwrites,
            reason="Mystery finale secret room",
        )
        print(f"[Mystery] created restricted channel #{self.channel_name} guild={guild.id}")
        return channel

    async def _resolve_member(self, guild, user_id: int):
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except Exception:
            return None

    async def grant_role(self, guild, user_id: int, role) -> bool:
        member = await self._resolve_member(guild, user_id)
        if member is None:
            return False
        if any(getattr(r, "id", None) == role.id for r in getattr(member, "roles", [])):
            return True
        try:
            await member.add_roles(role, reason="Mystery finale participant")
            return True
        except Exception as e:
            print(f"[Mystery] role grant failed user={user_id}: {e}")
            return False

    async def run_finale(self, guild, participants: set[int], welcome_text: str) -> FinaleResult:
        result = FinaleResult()
        try:
            result.role = await self.ensure_reward_role(guild)
            result.channel = await self.ensure_restricted_channel(guild, result.role)
        except Exception as e:
            print(f"[Mystery] finale provisioning failed guild={guild.id}: {e}")
            return result

        for user_id in sorted(participants):
            if await self.grant_role(guild, user_id, result.role):
                result.granted += 1
            else:
                result.failed += 1

        try:
            await result.channel.send(welcome_text)
        except Exception as e:
            print(f"[Mystery] finale welcome failed guild={guild.id}: {e}")
        return result
