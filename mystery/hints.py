from __future__ import annotations

import random

from mystery.models import CommunityProgress
from mystery.models import StageDefinition
from mystery.models import hint_key


def next_unique_hint(
    progress: CommunityProgress,
    stage_obj: StageDefinition,
    rng: random.Random | None = None,
) -> str | None:
    """Draw a hint for the stage without repeating until the pool is used up.

    When every index has been drawn, the used set is emptied first and the
    pick comes from the full pool. The caller persists `progress`.
    """
    pool = list(stage_obj.hints or [])
    if not pool:
        return None

    key = hint_key(stage_obj.number)
    used = {i for i in progress.hint_progress.get(key, set()) if 0 <= i < len(pool)}
    if len(used) >= len(pool):
        used = set()

    available = [i for i in range(len(pool)) if i not in used]
    idx = (rng or random).choice(available)
    used.add(idx)
    progress.hint_progress[key] = used
    return pool[idx]
