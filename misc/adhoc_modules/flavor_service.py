from __future__ import annotations

import random

ROAST_COOLDOWN_KEY = "roast_daily"


class FlavorService:
    """Scripted one-liners: the daily roast and the motel fortunes."""

    def __init__(self, *, mystery_service, rng: random.Random | None = None) -> None:
        self.mystery_service = mystery_service
        self.rng = rng or random.Random()

    def _pick(self, pool: list[str]) -> str | None:
        if not pool:
            return None
        return self.rng.choice(pool)

    async def maybe_roast(self, message, text: str) -> bool:
        brain = self.mystery_service.brain()
        if brain.roast_pattern is None or not brain.roast_pattern.search(text or ""):
            return False
        if not brain.roast_pool:
            return False
        if not await self.mystery_service.claim_daily_cooldown(int(message.guild.id), ROAST_COOLDOWN_KEY):
            return False

        line = self._pick(brain.roast_pool)
        try:
            await message.reply(line)
        except Exception as e:
            print(f"[Flavor] roast reply failed: {e}")
        return True

    async def ask_the_motel(self, message) -> bool:
        line = self._pick(self.mystery_service.brain().fortunes)
        if line is None:
            return False
        try:
            await message.reply(line)
        except Exception as e:
            print(f"[Flavor] fortune reply failed: {e}")
        return True

    def ambient_line(self) -> str | None:
        return self._pick(self.mystery_service.brain().ambient)
