from __future__ import annotations

import unittest

try:
    from mystery.provisioner import RewardProvisioner
except ModuleNotFoundError:
    RewardProvisioner = None


class _FakeRole:
    def __init__(self, role_id: int, name: str):
        self.id = role_id
        self.name = name


class _FakeChannel:
    def __init__(self, name: str, overwrites=None):
        self.name = name
        self.overwrites = overwrites or {}
        self.sent: list[str] = []

    async def send(self, text: str):
        self.sent.append(text)


class _FakeMember:
    def __init__(self, member_id: int, *, fail: bool = False):
        self.id = member_id
        self.roles: list[_FakeRole] = []
        self.fail = fail

    async def add_roles(self, role, reason=None):
        if self.fail:
            raise RuntimeError("missing permissions")
        self.roles.append(role)


class _FakeGuild:
    def __init__(self, members: dict[int, _FakeMember]):
        self.id = 1
        self.default_role = _FakeRole(1, "@everyone")
        self.roles: list[_FakeRole] = [self.default_role]
        self.text_channels: list[_FakeChannel] = []
        self.members = members
        self.created_roles = 0
        self.created_channels = 0

    async def create_role(self, *, name, colour=None, reason=None):
        self.created_roles += 1
        role = _FakeRole(100 + self.created_roles, name)
        self.roles.append(role)
        return role

    async def create_text_channel(self, name, *, overwrites=None, reason=None):
        self.created_channels += 1
        channel = _FakeChannel(name, overwrites)
        self.text_channels.append(channel)
        return channel

    def get_member(self, user_id: int):
        return self.members.get(int(user_id))

    async def fetch_member(self, user_id: int):
        raise LookupError(user_id)


@unittest.skipIf(RewardProvisioner is None, "discord.py not installed")
class RewardProvisionerTests(unittest.IsolatedAsyncioTestCase):
    def _provisioner(self):
        return RewardProvisioner(role_name="Keyholder", channel_name="archive-of-truth")

    async def test_finale_creates_room_and_grants_role(self):
        guild = _FakeGuild({1: _FakeMember(1), 2: _FakeMember(2)})
        result = await self._provisioner().run_finale(guild, {1, 2, 3}, "welcome")

        self.assertEqual(result.granted, 2)
        self.assertEqual(result.failed, 1)
        self.assertEqual(result.role.name, "Keyholder")
        self.assertEqual(result.channel.sent, ["welcome"])
        self.assertIn(result.role, guild.members[1].roles)

        overwrites = result.channel.overwrites
        self.assertFalse(overwrites[guild.default_role].view_channel)
        self.assertTrue(overwrites[result.role].view_channel)
        self.assertTrue(overwrites[result.role].send_messages)

    async def test_finale_twice_reuses_role_and_room(self):
        member = _FakeMember(1)
        guild = _FakeGuild({1: member})
        provisioner = self._provisioner()
        await provisioner.run_finale(guild, {1}, "welcome")
        again = await provisioner.run_finale(guild, {1}, "welcome")

        self.assertEqual(guild.created_roles, 1)
        self.assertEqual(guild.created_channels, 1)
        self.assertEqual(again.granted, 1)
        self.assertEqual(len(member.roles), 1)

    async def test_grant_failure_is_counted_not_raised(self):
        guild = _FakeGuild({1: _FakeMember(1, fail=True), 2: _FakeMember(2)})
        result = await self._provisioner().run_finale(guild, {1, 2}, "welcome")
        self.assertEqual((result.granted, result.failed), (1, 1))


if __name__ == "__main__":
    unittest.main()
