from __future__ import annotations

import asyncio
import random
import sqlite3
import unittest
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

from db.migrate import apply_sqlite_migrations
from jobs.ambient import pick_ambient_channel
from jobs.ambient import post_ambient_tick
from misc.adhoc_modules.flavor_service import FlavorService
from mystery.brain import parse_brain
from mystery.service import MysteryService

BRAIN_PAYLOAD = {
    "roast_pool": ["laminated badge incoming."],
    "fortunes": ["the motel says: yes."],
    "ambient": ["*the ice machine hums.*"],
}


def _migrations_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "migrations")


class _StaticBrain:
    def __init__(self, payload: dict):
        self.brain, _ = parse_brain(payload)

    def get(self):
        return self.brain


class _FakeMessage:
    def __init__(self, guild_id: int = 1):
        self.guild = SimpleNamespace(id=guild_id)
        self.replies: list[str] = []

    async def reply(self, text: str):
        self.replies.append(text)


class _FakeChannel:
    def __init__(self, channel_id: int, *, can_send: bool = True):
        self.id = channel_id
        self.can_send = can_send
        self.sent: list[str] = []

    def permissions_for(self, member):
        return SimpleNamespace(send_messages=self.can_send)

    async def send(self, text: str):
        self.sent.append(text)


class FlavorServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())
        self.mystery = MysteryService(
            db_lock=asyncio.Lock(),
            db_conn=self.conn,
            brain_source=_StaticBrain(BRAIN_PAYLOAD),
            provisioner=None,
            timezone_name="UTC",
            clock=lambda: datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc),
        )
        self.flavor = FlavorService(mystery_service=self.mystery, rng=random.Random(1))

    async def asyncTearDown(self):
        self.conn.close()

    async def test_roast_fires_once_per_day(self):
        first = _FakeMessage()
        second = _FakeMessage()
        self.assertTrue(await self.flavor.maybe_roast(first, "we have too many rules here"))
        self.assertFalse(await self.flavor.maybe_roast(second, "north korea vibes"))
        self.assertEqual(first.replies, ["laminated badge incoming."])
        self.assertEqual(second.replies, [])

    async def test_roast_cooldown_is_per_guild(self):
        self.assertTrue(await self.flavor.maybe_roast(_FakeMessage(1), "rule police"))
        self.assertTrue(await self.flavor.maybe_roast(_FakeMessage(2), "rule police"))

    async def test_non_matching_text_is_not_roasted(self):
        message = _FakeMessage()
        self.assertFalse(await self.flavor.maybe_roast(message, "what a lovely motel"))
        progress = await self.mystery.get_progress(1)
        self.assertNotIn("roast_daily", progress.cooldowns)

    async def test_ask_the_motel(self):
        message = _FakeMessage()
        self.assertTrue(await self.flavor.ask_the_motel(message))
        self.assertEqual(message.replies, ["the motel says: yes."])


class AmbientTests(unittest.IsolatedAsyncioTestCase):
    def test_prefers_system_channel(self):
        system = _FakeChannel(1)
        guild = SimpleNamespace(system_channel=system, me=object(), text_channels=[_FakeChannel(2)])
        self.assertIs(pick_ambient_channel(guild), system)

    def test_falls_back_to_first_writable_channel(self):
        writable = _FakeChannel(3)
        guild = SimpleNamespace(
            system_channel=_FakeChannel(1, can_send=False),
            me=object(),
            text_channels=[_FakeChannel(2, can_send=False), writable],
        )
        self.assertIs(pick_ambient_channel(guild), writable)

    async def test_tick_posts_per_guild_on_successful_roll(self):
        channel = _FakeChannel(1)
        bot = SimpleNamespace(guilds=[SimpleNamespace(id=1, system_channel=channel, me=None, text_channels=[])])
        flavor = SimpleNamespace(ambient_line=lambda: "*hum*")

        posted = await post_ambient_tick(bot=bot, flavor_service=flavor, chance=1.0, rng=random.Random(0))
        self.assertEqual(posted, 1)
        self.assertEqual(channel.sent, ["*hum*"])

        skipped = await post_ambient_tick(bot=bot, flavor_service=flavor, chance=0.0, rng=random.Random(0))
        self.assertEqual(skipped, 0)


if __name__ == "__main__":
    unittest.main()
