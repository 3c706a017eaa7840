from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest import mock

try:
    from misc.discord_gates import message_in_community
except ModuleNotFoundError:
    message_in_community = None


@unittest.skipIf(message_in_community is None, "discord.py not installed")
class DiscordGatesTests(unittest.TestCase):
    def _message(self, *, guild=True, bot=False, channel=None):
        return SimpleNamespace(
            guild=SimpleNamespace(id=1) if guild else None,
            author=SimpleNamespace(id=10, bot=bot),
            channel=channel or SimpleNamespace(id=123),
        )

    def test_dm_is_ignored(self):
        self.assertFalse(message_in_community(self._message(guild=False), allowed_channel_ids=set()))

    def test_bot_author_is_ignored(self):
        self.assertFalse(message_in_community(self._message(bot=True), allowed_channel_ids=set()))

    def test_empty_allowlist_allows_every_channel(self):
        self.assertTrue(message_in_community(self._message(), allowed_channel_ids=set()))

    def test_disallowed_channel_is_blocked(self):
        message = self._message(channel=SimpleNamespace(id=999))
        self.assertFalse(message_in_community(message, allowed_channel_ids={123}))

    def test_thread_parent_allowlist_is_honored(self):
        class FakeThread:
            def __init__(self, channel_id: int, parent_id: int):
                self.id = int(channel_id)
                self.parent = SimpleNamespace(id=int(parent_id))

        message = self._message(channel=FakeThread(channel_id=777, parent_id=123))
        with mock.patch("misc.discord_gates.discord.Thread", FakeThread):
            self.assertTrue(message_in_community(message, allowed_channel_ids={123}))


if __name__ == "__main__":
    unittest.main()
