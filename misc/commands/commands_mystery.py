from __future__ import annotations

import asyncio

from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from mystery.brain import Brain
from mystery.models import AlternatingGate
from mystery.models import CommunityProgress
from mystery.models import ConfessionGate
from mystery.models import PairGate
from mystery.models import PollGate


def describe_gate(progress: CommunityProgress) -> str:
    gate = progress.current_gate()
    if gate is None:
        return "none"
    if isinstance(gate, ConfessionGate):
        return f"confession ({len(gate.confessors)} confessors)"
    if isinstance(gate, AlternatingGate):
        return f"alternating ({len(gate.sequence)} accepted, last={gate.sequence[-1] if gate.sequence else '-'})"
    if isinstance(gate, PairGate):
        apology = "yes" if gate.apology_by is not None else "no"
        return f"pair (apology={apology})"
    if isinstance(gate, PollGate):
        return f"poll (message={gate.poll_message_id}, closed={gate.closed})"
    return gate.kind


def format_status(progress: CommunityProgress, brain: Brain) -> str:
    stage_obj = brain.stage(progress.stage)
    lines = [
        f"stage: {progress.stage}" + ("" if stage_obj is not None else " (no definition; mystery inactive)"),
        f"gate kind: {stage_obj.gate_kind if stage_obj is not None else '-'}",
        f"open gate: {describe_gate(progress)}",
        f"participants: {len(progress.participants)}",
        f"cooldowns today: {', '.join(sorted(progress.cooldowns)) or 'none'}",
        f"stages loaded: {len(brain.stages)}",
    ]
    return "\n".join(lines)


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="mystery")
    @commands.guild_only()
    async def cmd_mystery(ctx: commands.Context, action: str = "status", limit: int = 10):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return

        guild_id = int(ctx.guild.id)
        service = deps.mystery_service
        action = (action or "status").strip().lower()

        if action == "status":
            progress = await service.get_progress(guild_id)
            async with deps.db_lock:
                guests = await asyncio.to_thread(deps.count_guests_sync, deps.db_conn)
            body = format_status(progress, service.brain()) + f"\nguestbook entries: {guests}"
            await deps.send_chunked(ctx.channel, "```\n" + body + "\n```")
            return

        if action == "log":
            lim = max(1, min(int(limit or 10), 50))
            async with deps.db_lock:
                rows = await asyncio.to_thread(deps.fetch_stage_log_sync, deps.db_conn, guild_id, lim)
            if not rows:
                await ctx.send("No stage transitions yet.")
                return
            lines = [f"Stage transitions (latest {len(rows)}):"]
            for row in rows:
                actor = row["actor_user_id"] if row["actor_user_id"] is not None else "-"
                lines.append(
                    f"- {row['created_at_utc']} {row['from_stage']} -> {row['to_stage']} "
                    f"{row['reason']} actor={actor}"
                )
            await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines) + "\n```")
            return

        if action == "reset":
            fresh = await service.reset_progress(guild_id, actor_user_id=int(ctx.author.id))
            await ctx.send(f"Mystery reset to stage {fresh.stage}. Participants kept: {len(fresh.participants)}.")
            return

        await ctx.send("Usage: `!mystery status`, `!mystery log [limit]`, `!mystery reset`")
