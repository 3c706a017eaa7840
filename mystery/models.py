from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

SCHEMA_VERSION = 1

GATE_PLAIN = "plain"
GATE_CONFESSION = "confession"
GATE_ALTERNATING = "alternating"
GATE_PAIR = "pair"
GATE_POLL = "poll"
GATE_FINALE = "finale"

GATE_KINDS = {GATE_PLAIN, GATE_CONFESSION, GATE_ALTERNATING, GATE_PAIR, GATE_POLL, GATE_FINALE}
# Kinds whose stage waits on a collector unless the content file says otherwise.
GATED_KINDS = {GATE_CONFESSION, GATE_ALTERNATING, GATE_PAIR, GATE_POLL}

KIND_CONFESSION = "confession"
KIND_JOKE = "joke"


def gate_key(stage: int) -> str:
    return f"stage_{int(stage)}"


def hint_key(stage: int) -> str:
    return f"stage_{int(stage)}"


@dataclass(slots=True)
class PollSpec:
    option_a: str
    option_b: str
    outcome_a_reply: str
    outcome_b_reply: str


@dataclass(slots=True)
class StageDefinition:
    number: int
    triggers: list[re.Pattern]
    response: str
    gate_kind: str = GATE_PLAIN
    hints: list[str] = field(default_factory=list)
    task_prompt: str | None = None
    time_window: tuple[int, int, int, int] | None = None
    time_locked_reply: str | None = None
    requires_gate: bool = False
    poll: PollSpec | None = None

    def matches(self, text: str) -> bool:
        return any(rx.search(text or "") for rx in self.triggers)


# -------------------------
# Gate states
# -------------------------


@dataclass(slots=True)
class ConfessionGate:
    confessors: set[int] = field(default_factory=set)
    kind: str = GATE_CONFESSION

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "confessors": sorted(self.confessors)}


@dataclass(slots=True)
class AlternatingGate:
    sequence: list[str] = field(default_factory=list)
    kind: str = GATE_ALTERNATING

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "sequence": list(self.sequence)}


@dataclass(slots=True)
class PairGate:
    apology_by: int | None = None
    forgiveness_by: int | None = None
    kind: str = GATE_PAIR

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "apology_by": self.apology_by, "forgiveness_by": self.forgiveness_by}


@dataclass(slots=True)
class PollGate:
    poll_message_id: int | None = None
    closed: bool = False
    kind: str = GATE_POLL

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "poll_message_id": self.poll_message_id, "closed": bool(self.closed)}


GateState = ConfessionGate | AlternatingGate | PairGate | PollGate


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def gate_from_dict(payload: dict[str, Any]) -> GateState | None:
    if not isinstance(payload, dict):
        return None
    kind = str(payload.get("kind") or "").strip().lower()
    if kind == GATE_CONFESSION:
        return ConfessionGate(confessors={int(x) for x in payload.get("confessors") or []})
    if kind == GATE_ALTERNATING:
        seq = [str(x) for x in payload.get("sequence") or [] if str(x) in {KIND_CONFESSION, KIND_JOKE}]
        return AlternatingGate(sequence=seq)
    if kind == GATE_PAIR:
        return PairGate(
            apology_by=_opt_int(payload.get("apology_by")),
            forgiveness_by=_opt_int(payload.get("forgiveness_by")),
        )
    if kind == GATE_POLL:
        return PollGate(
            poll_message_id=_opt_int(payload.get("poll_message_id")),
            closed=bool(payload.get("closed", False)),
        )
    return None


# -------------------------
# Per-guild progress
# -------------------------


@dataclass(slots=True)
class CommunityProgress:
    stage: int = 1
    gates: dict[str, GateState] = field(default_factory=dict)
    cooldowns: dict[str, str] = field(default_factory=dict)
    participants: set[int] = field(default_factory=set)
    hint_progress: dict[str, set[int]] = field(default_factory=dict)

    def current_gate(self) -> GateState | None:
        return self.gates.get(gate_key(self.stage))

    def open_gate(self, gate: GateState) -> None:
        # Only the current stage may hold a gate.
        self.gates = {gate_key(self.stage): gate}

    def advance(self) -> None:
        self.stage += 1
        self.gates.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "stage": int(self.stage),
            "gates": {key: gate.to_dict() for key, gate in sorted(self.gates.items())},
            "cooldowns": dict(sorted(self.cooldowns.items())),
            "participants": sorted(self.participants),
            "hint_progress": {key: {"used": sorted(used)} for key, used in sorted(self.hint_progress.items())},
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "CommunityProgress":
        if not isinstance(payload, dict):
            return cls()
        version = int(payload.get("schema_version") or 0)
        if version > SCHEMA_VERSION:
            raise ValueError(f"Unsupported progress schema_version={version}")

        gates: dict[str, GateState] = {}
        raw_gates = payload.get("gates") if isinstance(payload.get("gates"), dict) else {}
        for key, raw in raw_gates.items():
            gate = gate_from_dict(raw)
            if gate is not None:
                gates[str(key)] = gate

        hint_progress: dict[str, set[int]] = {}
        raw_hints = payload.get("hint_progress") if isinstance(payload.get("hint_progress"), dict) else {}
        for key, raw in raw_hints.items():
            used = raw.get("used") if isinstance(raw, dict) else raw
            hint_progress[str(key)] = {int(i) for i in (used or [])}

        raw_cooldowns = payload.get("cooldowns") if isinstance(payload.get("cooldowns"), dict) else {}
        return cls(
            stage=max(1, int(payload.get("stage") or 1)),
            gates=gates,
            cooldowns={str(k): str(v) for k, v in raw_cooldowns.items()},
            participants={int(uid) for uid in payload.get("participants") or []},
            hint_progress=hint_progress,
        )


def progress_from_legacy(payload: dict[str, Any]) -> CommunityProgress:
    """
    Convert one guild entry of the old state.json blob.

    Old gates were keyed by stage (s3/s6/s7/s9) with their own field names;
    only the gate belonging to the current stage is carried over.
    """
    stage = max(1, int(payload.get("stage") or 1))
    raw_participants = payload.get("participants") or {}
    if isinstance(raw_participants, dict):
        participants = {int(uid) for uid, flag in raw_participants.items() if flag}
    else:
        participants = {int(uid) for uid in raw_participants}

    progress = CommunityProgress(
        stage=stage,
        cooldowns={str(k): str(v) for k, v in (payload.get("cooldowns") or {}).items()},
        participants=participants,
    )

    legacy_gate = (payload.get("gates") or {}).get(f"s{stage}")
    if isinstance(legacy_gate, dict):
        gate: GateState | None = None
        if "confessors" in legacy_gate:
            gate = ConfessionGate(confessors={int(uid) for uid in (legacy_gate.get("confessors") or {})})
        elif "sequence" in legacy_gate:
            mapping = {"conf": KIND_CONFESSION, "joke": KIND_JOKE}
            gate = AlternatingGate(
                sequence=[mapping[s] for s in legacy_gate.get("sequence") or [] if s in mapping]
            )
        elif "apologyBy" in legacy_gate or "forgivenessBy" in legacy_gate:
            gate = PairGate(
                apology_by=_opt_int(legacy_gate.get("apologyBy")),
                forgiveness_by=_opt_int(legacy_gate.get("forgivenessBy")),
            )
        elif "pollId" in legacy_gate:
            gate = PollGate(
                poll_message_id=_opt_int(legacy_gate.get("pollId")),
                closed=bool(legacy_gate.get("closed", False)),
            )
        if gate is not None:
            progress.open_gate(gate)
    return progress
