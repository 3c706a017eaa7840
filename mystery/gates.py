from __future__ import annotations

import re
from dataclasses import dataclass, field

from config.defaults import ALTERNATING_LENGTH
from config.defaults import CONFESSION_THRESHOLD
from config.defaults import POLL_MAJORITY_MIN
from config.defaults import POLL_QUORUM
from mystery.brain import Brain
from mystery.models import KIND_CONFESSION
from mystery.models import KIND_JOKE
from mystery.models import AlternatingGate
from mystery.models import CommunityProgress
from mystery.models import ConfessionGate
from mystery.models import PairGate
from mystery.models import PollGate
from mystery.models import PollSpec

OUTCOME_A = "a"
OUTCOME_B = "b"


class PatternClassifier:
    """Maps text to the first kind whose patterns match, in declaration order."""

    def __init__(self, kinds: list[tuple[str, list[re.Pattern]]]) -> None:
        self.kinds = [(kind, list(patterns)) for kind, patterns in kinds]

    def classify(self, text: str) -> str | None:
        for kind, patterns in self.kinds:
            if any(rx.search(text or "") for rx in patterns):
                return kind
        return None


def confession_classifier(brain: Brain) -> PatternClassifier:
    return PatternClassifier([(KIND_CONFESSION, brain.gate_patterns.get("confession", []))])


def alternating_classifier(brain: Brain) -> PatternClassifier:
    # Confession wins when a message matches both.
    return PatternClassifier(
        [
            (KIND_CONFESSION, brain.gate_patterns.get("alternating_confession", [])),
            (KIND_JOKE, brain.gate_patterns.get("alternating_joke", [])),
        ]
    )


@dataclass(slots=True)
class GateOutcome:
    replies: list[str] = field(default_factory=list)
    consumed: bool = False
    changed: bool = False
    advanced: bool = False


def collect_confession(
    progress: CommunityProgress,
    gate: ConfessionGate,
    *,
    text: str,
    author_id: int,
    brain: Brain,
) -> GateOutcome:
    if confession_classifier(brain).classify(text) is None:
        return GateOutcome()

    before = len(gate.confessors)
    gate.confessors.add(int(author_id))
    count = len(gate.confessors)
    out = GateOutcome(consumed=True, changed=count != before)

    if count >= CONFESSION_THRESHOLD:
        out.replies.append(brain.text("confession_success"))
        progress.advance()
        out.changed = True
        out.advanced = True
    else:
        out.replies.append(brain.text("confession_progress", count=count, threshold=CONFESSION_THRESHOLD))
    return out


def expected_alternating_kind(gate: AlternatingGate) -> str:
    return KIND_CONFESSION if len(gate.sequence) % 2 == 0 else KIND_JOKE


def collect_alternating(
    progress: CommunityProgress,
    gate: AlternatingGate,
    *,
    text: str,
    brain: Brain,
) -> GateOutcome:
    kind = alternating_classifier(brain).classify(text)
    if kind is None:
        return GateOutcome()

    if kind != expected_alternating_kind(gate):
        return GateOutcome(replies=[brain.text("alternating_rejected")], consumed=True)

    gate.sequence.append(kind)
    count = len(gate.sequence)
    out = GateOutcome(consumed=True, changed=True)
    out.replies.append(brain.text("alternating_progress", count=count, length=ALTERNATING_LENGTH))
    if count >= ALTERNATING_LENGTH:
        out.replies.append(brain.text("alternating_success"))
        progress.advance()
        out.advanced = True
    return out


def collect_pair(
    progress: CommunityProgress,
    gate: PairGate,
    *,
    text: str,
    author_id: int,
    brain: Brain,
) -> GateOutcome:
    patterns = brain.gate_patterns
    is_apology = any(rx.search(text or "") for rx in patterns.get("apology", []))
    is_forgiveness = any(rx.search(text or "") for rx in patterns.get("forgiveness", []))

    if gate.apology_by is None and is_apology:
        gate.apology_by = int(author_id)
        return GateOutcome(replies=[brain.text("pair_apology")], consumed=True, changed=True)

    # Forgiveness only counts once an apology is on record.
    if gate.apology_by is not None and gate.forgiveness_by is None and is_forgiveness:
        gate.forgiveness_by = int(author_id)
        progress.advance()
        return GateOutcome(replies=[brain.text("pair_success")], consumed=True, changed=True, advanced=True)

    return GateOutcome()


def decide_poll(count_a: int, count_b: int) -> str | None:
    """Returns None below quorum, else the outcome; ties and minorities go to B."""
    if count_a + count_b < POLL_QUORUM:
        return None
    if count_a >= POLL_MAJORITY_MIN and count_a > count_b:
        return OUTCOME_A
    return OUTCOME_B


def collect_poll(
    progress: CommunityProgress,
    gate: PollGate,
    *,
    raw_count_a: int,
    raw_count_b: int,
    poll: PollSpec,
) -> GateOutcome:
    if gate.closed:
        return GateOutcome()

    # One seed reaction per option belongs to the bot.
    count_a = max(0, int(raw_count_a) - 1)
    count_b = max(0, int(raw_count_b) - 1)
    outcome = decide_poll(count_a, count_b)
    if outcome is None:
        return GateOutcome()

    gate.closed = True
    reply = poll.outcome_a_reply if outcome == OUTCOME_A else poll.outcome_b_reply
    progress.advance()
    return GateOutcome(replies=[reply], consumed=True, changed=True, advanced=True)
