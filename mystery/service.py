from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from config.defaults import DEFAULT_POLL_DEBOUNCE_SECONDS
from config.defaults import DEFAULT_TIME_LOCKED_REPLY
from mystery.brain import Brain
from mystery.cooldowns import has_daily_cooldown
from mystery.cooldowns import now_in_window
from mystery.cooldowns import resolve_tz
from mystery.cooldowns import set_daily_cooldown
from mystery.gates import GateOutcome
from mystery.gates import collect_alternating
from mystery.gates import collect_confession
from mystery.gates import collect_pair
from mystery.gates import collect_poll
from mystery.hints import next_unique_hint
from mystery.models import GATE_ALTERNATING
from mystery.models import GATE_CONFESSION
from mystery.models import GATE_FINALE
from mystery.models import GATE_PAIR
from mystery.models import GATE_POLL
from mystery.models import AlternatingGate
from mystery.models import CommunityProgress
from mystery.models import ConfessionGate
from mystery.models import PairGate
from mystery.models import PollGate
from mystery.models import StageDefinition
from mystery.store import get_or_create_progress_sync
from mystery.store import insert_stage_log_sync
from mystery.store import save_progress_sync

ACTION_NOOP = "noop"
ACTION_HINT = "hint"
ACTION_TIME_LOCKED = "time_locked"
ACTION_ANNOUNCED = "announced"
ACTION_GATE_OPENED = "gate_opened"
ACTION_POLL_OPENED = "poll_opened"
ACTION_FINALE = "finale"
ACTION_GATE_PROGRESS = "gate_progress"
ACTION_GATE_RESOLVED = "gate_resolved"


@dataclass(slots=True)
class StageAction:
    kind: str
    stage_before: int
    stage_after: int
    replied: bool = False


class MysteryService:
    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        brain_source,
        provisioner,
        timezone_name: str,
        poll_debounce_seconds: float = DEFAULT_POLL_DEBOUNCE_SECONDS,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.brain_source = brain_source
        self.provisioner = provisioner
        self.timezone_name = (timezone_name or "UTC").strip() or "UTC"
        self.tz = resolve_tz(self.timezone_name)
        self.poll_debounce_seconds = max(0.0, float(poll_debounce_seconds))
        self.rng = rng or random.Random()
        self.clock = clock

        self._guild_locks: dict[int, asyncio.Lock] = {}

    # -------------------------
    # state plumbing
    # -------------------------

    def _now(self) -> datetime | None:
        return self.clock() if self.clock else None

    def _guild_lock(self, guild_id: int) -> asyncio.Lock:
        lock = self._guild_locks.get(int(guild_id))
        if lock is None:
            lock = asyncio.Lock()
            self._guild_locks[int(guild_id)] = lock
        return lock

    async def _load(self, guild_id: int) -> CommunityProgress:
        async with self.db_lock:
            return await asyncio.to_thread(get_or_create_progress_sync, self.db_conn, int(guild_id))

    async def _save(self, guild_id: int, progress: CommunityProgress) -> None:
        async with self.db_lock:
            await asyncio.to_thread(save_progress_sync, self.db_conn, int(guild_id), progress)

    async def _log_transition(
        self,
        guild_id: int,
        from_stage: int,
        to_stage: int,
        reason: str,
        actor_user_id: int | None,
    ) -> None:
        print(f"[Mystery] guild={guild_id} stage {from_stage} -> {to_stage} ({reason})")
        async with self.db_lock:
            await asyncio.to_thread(
                insert_stage_log_sync,
                self.db_conn,
                guild_id=int(guild_id),
                from_stage=int(from_stage),
                to_stage=int(to_stage),
                reason=reason,
                actor_user_id=actor_user_id,
            )

    @staticmethod
    async def _send(channel, text: str):
        if not text:
            return None
        try:
            return await channel.send(text)
        except Exception as e:
            print(f"[Mystery] send failed channel={getattr(channel, 'id', '?')}: {e}")
            return None

    @staticmethod
    async def _reply(message, text: str):
        try:
            return await message.reply(text)
        except Exception as e:
            print(f"[Mystery] reply failed message={getattr(message, 'id', '?')}: {e}")
            return None

    # -------------------------
    # public helpers
    # -------------------------

    def brain(self) -> Brain:
        return self.brain_source.get()

    async def get_progress(self, guild_id: int) -> CommunityProgress:
        async with self._guild_lock(guild_id):
            return await self._load(guild_id)

    async def claim_daily_cooldown(self, guild_id: int, key: str) -> bool:
        """Marks `key` as used today. False when it already fired today."""
        async with self._guild_lock(guild_id):
            progress = await self._load(guild_id)
            if has_daily_cooldown(progress, key, self.tz, self._now()):
                return False
            set_daily_cooldown(progress, key, self.tz, self._now())
            await self._save(guild_id, progress)
            return True

    async def reset_progress(self, guild_id: int, *, actor_user_id: int | None = None) -> CommunityProgress:
        async with self._guild_lock(guild_id):
            old = await self._load(guild_id)
            fresh = CommunityProgress(participants=set(old.participants))
            await self._save(guild_id, fresh)
            await self._log_transition(guild_id, old.stage, fresh.stage, "owner_reset", actor_user_id)
            return fresh

    # -------------------------
    # message path
    # -------------------------

    async def handle_message(self, message, *, text: str, addressed: bool) -> StageAction:
        guild_id = int(message.guild.id)
        author_id = int(message.author.id)
        brain = self.brain()

        async with self._guild_lock(guild_id):
            progress = await self._load(guild_id)
            await self._add_participant(guild_id, progress, brain, author_id)

            gate_action = await self._run_collector(message, progress, brain, text=text)
            if gate_action is not None:
                return gate_action

            return await self.process(message, progress, brain, text=text, addressed=addressed)

    async def _add_participant(self, guild_id: int, progress: CommunityProgress, brain: Brain, user_id: int) -> bool:
        # Only while a stage is live, and only saved when the set grows.
        if brain.stage(progress.stage) is None or int(user_id) in progress.participants:
            return False
        progress.participants.add(int(user_id))
        await self._save(guild_id, progress)
        return True

    async def record_participant(self, guild_id: int, user_id: int) -> bool:
        """Counts a guild message toward the finale even when nothing else in the mystery sees it."""
        brain = self.brain()
        async with self._guild_lock(guild_id):
            progress = await self._load(guild_id)
            return await self._add_participant(guild_id, progress, brain, user_id)

    async def _run_collector(self, message, progress: CommunityProgress, brain: Brain, *, text: str) -> StageAction | None:
        gate = progress.current_gate()
        if gate is None:
            return None

        guild_id = int(message.guild.id)
        author_id = int(message.author.id)
        stage_before = progress.stage

        outcome: GateOutcome
        if isinstance(gate, ConfessionGate):
            outcome = collect_confession(progress, gate, text=text, author_id=author_id, brain=brain)
        elif isinstance(gate, AlternatingGate):
            outcome = collect_alternating(progress, gate, text=text, brain=brain)
        elif isinstance(gate, PairGate):
            outcome = collect_pair(progress, gate, text=text, author_id=author_id, brain=brain)
        else:
            # Poll gates resolve from reactions.
            return None

        if not outcome.consumed:
            return None

        if outcome.changed:
            await self._save(guild_id, progress)
        if outcome.advanced:
            await self._log_transition(guild_id, stage_before, progress.stage, f"gate:{gate.kind}", author_id)

        for reply in outcome.replies:
            await self._send(message.channel, reply)

        return StageAction(
            kind=ACTION_GATE_RESOLVED if outcome.advanced else ACTION_GATE_PROGRESS,
            stage_before=stage_before,
            stage_after=progress.stage,
            replied=bool(outcome.replies),
        )

    async def process(
        self,
        message,
        progress: CommunityProgress,
        brain: Brain,
        *,
        text: str,
        addressed: bool,
    ) -> StageAction:
        """
        Evaluate one message against the current stage.

        The caller holds the guild lock. State is committed before any
        notification is attempted; notification failures are logged only.
        """
        guild_id = int(message.guild.id)
        stage_before = progress.stage
        stage_obj = brain.stage(progress.stage)
        if stage_obj is None:
            return StageAction(ACTION_NOOP, stage_before, stage_before)

        if not stage_obj.matches(text):
            return await self._maybe_hint(message, progress, stage_obj, addressed=addressed)

        if stage_obj.time_window is not None and not now_in_window(stage_obj.time_window, self.tz, self._now()):
            await self._reply(message, stage_obj.time_locked_reply or DEFAULT_TIME_LOCKED_REPLY)
            return StageAction(ACTION_TIME_LOCKED, stage_before, stage_before, replied=True)

        if stage_obj.gate_kind == GATE_POLL:
            return await self._open_poll(message, progress, stage_obj)

        kind = stage_obj.gate_kind
        action_kind = ACTION_ANNOUNCED
        if kind == GATE_CONFESSION:
            # Re-triggering keeps an in-progress tally.
            if not isinstance(progress.current_gate(), ConfessionGate):
                progress.open_gate(ConfessionGate())
            action_kind = ACTION_GATE_OPENED
        elif kind == GATE_ALTERNATING:
            progress.open_gate(AlternatingGate())
            action_kind = ACTION_GATE_OPENED
        elif kind == GATE_PAIR:
            progress.open_gate(PairGate())
            action_kind = ACTION_GATE_OPENED
        elif kind == GATE_FINALE:
            action_kind = ACTION_FINALE

        if not stage_obj.requires_gate:
            progress.advance()
        await self._save(guild_id, progress)
        if progress.stage != stage_before:
            await self._log_transition(guild_id, stage_before, progress.stage, f"trigger:{kind}", int(message.author.id))

        await self._send(message.channel, stage_obj.response)
        if stage_obj.task_prompt and kind != GATE_FINALE:
            await self._send(message.channel, stage_obj.task_prompt)

        if kind == GATE_FINALE and self.provisioner is not None:
            result = await self.provisioner.run_finale(
                message.guild,
                set(progress.participants),
                brain.finale_room_welcome,
            )
            print(f"[Mystery] finale guild={guild_id} granted={result.granted} failed={result.failed}")

        return StageAction(action_kind, stage_before, progress.stage, replied=True)

    async def _maybe_hint(
        self,
        message,
        progress: CommunityProgress,
        stage_obj: StageDefinition,
        *,
        addressed: bool,
    ) -> StageAction:
        stage_before = progress.stage
        cooldown_key = f"hint_{stage_obj.number}"
        if not (addressed and stage_obj.hints):
            return StageAction(ACTION_NOOP, stage_before, stage_before)
        if has_daily_cooldown(progress, cooldown_key, self.tz, self._now()):
            return StageAction(ACTION_NOOP, stage_before, stage_before)

        hint = next_unique_hint(progress, stage_obj, self.rng)
        set_daily_cooldown(progress, cooldown_key, self.tz, self._now())
        await self._save(int(message.guild.id), progress)
        await self._send(message.channel, hint or "")
        return StageAction(ACTION_HINT, stage_before, stage_before, replied=bool(hint))

    async def _open_poll(self, message, progress: CommunityProgress, stage_obj: StageDefinition) -> StageAction:
        # The poll message id must exist before the gate can be stored.
        poll_msg = await self._send(message.channel, stage_obj.response)
        if poll_msg is not None and stage_obj.poll is not None:
            for emoji in (stage_obj.poll.option_a, stage_obj.poll.option_b):
                try:
                    await poll_msg.add_reaction(emoji)
                except Exception as e:
                    print(f"[Mystery] poll reaction failed emoji={emoji}: {e}")

        progress.open_gate(PollGate(poll_message_id=int(poll_msg.id) if poll_msg is not None else None))
        await self._save(int(message.guild.id), progress)
        return StageAction(ACTION_POLL_OPENED, progress.stage, progress.stage, replied=poll_msg is not None)

    # -------------------------
    # reaction path
    # -------------------------

    async def handle_reaction(
        self,
        *,
        guild_id: int | None,
        message_id: int,
        emoji: str,
        user_is_bot: bool,
        fetch_message: Callable[[], Awaitable[Any]],
    ) -> StageAction | None:
        if user_is_bot or guild_id is None:
            return None

        brain = self.brain()
        async with self._guild_lock(guild_id):
            progress = await self._load(guild_id)
        gate = progress.current_gate()
        stage_obj = brain.stage(progress.stage)
        if not isinstance(gate, PollGate) or gate.closed or gate.poll_message_id != int(message_id):
            return None
        if stage_obj is None or stage_obj.poll is None:
            return None
        if str(emoji) not in {stage_obj.poll.option_a, stage_obj.poll.option_b}:
            return None

        # Let near-simultaneous reactions land before counting.
        await asyncio.sleep(self.poll_debounce_seconds)

        try:
            poll_message = await fetch_message()
        except Exception as e:
            print(f"[Mystery] poll fetch failed message={message_id}: {e}")
            return None
        raw_a = reaction_count(poll_message, stage_obj.poll.option_a)
        raw_b = reaction_count(poll_message, stage_obj.poll.option_b)

        async with self._guild_lock(guild_id):
            progress = await self._load(guild_id)
            gate = progress.current_gate()
            if not isinstance(gate, PollGate) or gate.poll_message_id != int(message_id):
                return None

            stage_before = progress.stage
            outcome = collect_poll(progress, gate, raw_count_a=raw_a, raw_count_b=raw_b, poll=stage_obj.poll)
            if not outcome.consumed:
                return None

            await self._save(guild_id, progress)
            await self._log_transition(guild_id, stage_before, progress.stage, "gate:poll", None)
            for reply in outcome.replies:
                await self._reply(poll_message, reply)
            return StageAction(ACTION_GATE_RESOLVED, stage_before, progress.stage, replied=True)


def reaction_count(message, emoji: str) -> int:
    for reaction in getattr(message, "reactions", None) or []:
        if str(reaction.emoji) == emoji:
            return int(reaction.count or 0)
    return 0
