from __future__ import annotations

import unittest
from types import SimpleNamespace

from mystery.brain import parse_brain
from mystery.service import ACTION_ANNOUNCED
from mystery.service import ACTION_NOOP
from mystery.service import StageAction

try:
    from misc.events_runtime import dispatch_guild_message
    from misc.events_runtime import handle_community_message
    from misc.events_runtime import is_command_message
    from misc.runtime_deps import RuntimeDeps
except ModuleNotFoundError:
    dispatch_guild_message = None
    handle_community_message = None
    is_command_message = None
    RuntimeDeps = None


class _FakeMysteryService:
    def __init__(self, action: StageAction):
        self.action = action
        self.seen: list[tuple[str, bool]] = []
        self.participants: list[tuple[int, int]] = []
        self._brain, _ = parse_brain(
            {"stages": [{"number": 1, "triggers": ["check in"], "response": "welcome to the motel."}]}
        )

    def brain(self):
        return self._brain

    async def record_participant(self, guild_id: int, user_id: int):
        self.participants.append((guild_id, user_id))
        return True

    async def handle_message(self, message, *, text: str, addressed: bool):
        self.seen.append((text, addressed))
        return self.action


class _FakeFlavorService:
    def __init__(self, *, roast: bool = False):
        self.roast = roast
        self.asked = 0

    async def maybe_roast(self, message, text):
        return self.roast

    async def ask_the_motel(self, message):
        self.asked += 1
        return True


@unittest.skipIf(handle_community_message is None, "discord.py not installed")
class HandleCommunityMessageTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sent: list[str] = []
        self.fallback_calls: list[dict] = []

    def _deps(self, *, mystery, flavor=None, client=object()):
        async def touch_guest(message):
            return ({"display_name": "Val", "message_count": 3}, False)

        async def send_chunked(channel, text):
            self.sent.append(text)

        async def fallback(**kwargs):
            self.fallback_calls.append(kwargs)
            return "sure thing."

        return RuntimeDeps(
            send_chunked=send_chunked,
            allowed_channel_ids=set(),
            persona_name="chad",
            mystery_service=mystery,
            flavor_service=flavor or _FakeFlavorService(),
            touch_guest_func=touch_guest,
            format_guest_for_llm=lambda guest, is_new: f"Guest: {guest['display_name']}",
            client=client,
            openai_model="gpt-4o-mini",
            generate_fallback_reply=fallback,
        )

    def _message(self, content: str):
        return SimpleNamespace(content=content, channel=SimpleNamespace(id=1), guild=SimpleNamespace(id=1))

    async def test_mention_is_normalized_before_the_mystery(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 2, 2))
        route = await handle_community_message(self._message("<@42> who are you"), deps=self._deps(mystery=mystery), bot_user_id=42)
        self.assertEqual(mystery.seen, [("chad, who are you", True)])
        self.assertEqual(route, "fallback")
        self.assertEqual(self.sent, ["sure thing."])

        call = self.fallback_calls[0]
        self.assertEqual(call["prompt"], "who are you")
        self.assertEqual(call["stage_number"], 2)
        self.assertEqual(call["previous_stage_response"], "welcome to the motel.")
        self.assertEqual(call["guest_block"], "Guest: Val")

    async def test_mystery_reply_suppresses_fallback(self):
        mystery = _FakeMysteryService(StageAction(ACTION_ANNOUNCED, 1, 2, replied=True))
        route = await handle_community_message(self._message("chad, check in"), deps=self._deps(mystery=mystery), bot_user_id=42)
        self.assertEqual(route, ACTION_ANNOUNCED)
        self.assertEqual(self.fallback_calls, [])

    async def test_ambient_chatter_never_reaches_the_llm(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        route = await handle_community_message(self._message("nice night"), deps=self._deps(mystery=mystery), bot_user_id=42)
        self.assertEqual(route, ACTION_NOOP)
        self.assertEqual(mystery.seen, [("nice night", False)])
        self.assertEqual(self.fallback_calls, [])

    async def test_no_client_means_no_fallback(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        await handle_community_message(self._message("chad, hi"), deps=self._deps(mystery=mystery, client=None), bot_user_id=42)
        self.assertEqual(self.fallback_calls, [])

    async def test_roast_replaces_fallback(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        deps = self._deps(mystery=mystery, flavor=_FakeFlavorService(roast=True))
        route = await handle_community_message(self._message("chad, too many rules"), deps=deps, bot_user_id=42)
        self.assertEqual(route, "roast")
        self.assertEqual(self.fallback_calls, [])

    async def test_ask_the_motel_skips_the_mystery(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        flavor = _FakeFlavorService()
        route = await handle_community_message(
            self._message("chad, ask the motel: am i doomed?"), deps=self._deps(mystery=mystery, flavor=flavor), bot_user_id=42
        )
        self.assertEqual(route, "ask_motel")
        self.assertEqual(flavor.asked, 1)
        self.assertEqual(mystery.seen, [])


class _FakeBot:
    def __init__(self, commands: set[str]):
        self.user = SimpleNamespace(id=42)
        self._commands = commands
        self.processed: list[str] = []

    def get_command(self, name: str):
        return object() if name in self._commands else None

    async def process_commands(self, message):
        self.processed.append(message.content)


@unittest.skipIf(dispatch_guild_message is None, "discord.py not installed")
class DispatchGuildMessageTests(unittest.IsolatedAsyncioTestCase):
    def _deps(self, mystery, flavor=None):
        async def touch_guest(message):
            return ({"display_name": "Val"}, False)

        async def send_chunked(channel, text):
            return None

        async def fallback(**kwargs):
            return "ok."

        return RuntimeDeps(
            send_chunked=send_chunked,
            allowed_channel_ids=set(),
            persona_name="chad",
            mystery_service=mystery,
            flavor_service=flavor or _FakeFlavorService(),
            touch_guest_func=touch_guest,
            format_guest_for_llm=lambda guest, is_new: "",
            client=None,
            openai_model="gpt-4o-mini",
            generate_fallback_reply=fallback,
        )

    def _message(self, content: str, author_id: int = 7):
        return SimpleNamespace(
            content=content,
            author=SimpleNamespace(id=author_id),
            channel=SimpleNamespace(id=1),
            guild=SimpleNamespace(id=1),
        )

    async def test_ask_the_motel_still_counts_the_guest(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        route = await dispatch_guild_message(
            _FakeBot({"mystery"}), self._message("chad, ask the motel: am i doomed?"), deps=self._deps(mystery)
        )
        self.assertEqual(route, "ask_motel")
        self.assertEqual(mystery.participants, [(1, 7)])
        self.assertEqual(mystery.seen, [])

    async def test_known_command_counts_the_guest(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        bot = _FakeBot({"mystery"})
        route = await dispatch_guild_message(bot, self._message("!mystery status", author_id=8), deps=self._deps(mystery))
        self.assertEqual(route, "command")
        self.assertEqual(bot.processed, ["!mystery status"])
        self.assertEqual(mystery.participants, [(1, 8)])
        self.assertEqual(mystery.seen, [])

    async def test_unknown_bang_message_reaches_the_mystery(self):
        mystery = _FakeMysteryService(StageAction(ACTION_NOOP, 1, 1))
        bot = _FakeBot({"mystery"})
        await dispatch_guild_message(bot, self._message("!!! i never told anyone"), deps=self._deps(mystery))
        self.assertEqual(bot.processed, [])
        self.assertEqual(mystery.seen, [("!!! i never told anyone", False)])

    def test_is_command_message(self):
        bot = _FakeBot({"mystery"})
        self.assertTrue(is_command_message(bot, "  !mystery log 5"))
        self.assertFalse(is_command_message(bot, "!nope"))
        self.assertFalse(is_command_message(bot, "!"))
        self.assertFalse(is_command_message(bot, "mystery"))


if __name__ == "__main__":
    unittest.main()
