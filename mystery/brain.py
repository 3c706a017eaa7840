from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from config.defaults import DEFAULT_FINALE_ROOM_WELCOME
from config.defaults import DEFAULT_GATE_PATTERNS
from config.defaults import DEFAULT_GATE_TEXT
from config.defaults import DEFAULT_PERSONA_PROMPT
from config.defaults import DEFAULT_POLL_OPTIONS
from config.defaults import DEFAULT_ROAST_PATTERN
from mystery.models import GATE_FINALE
from mystery.models import GATE_KINDS
from mystery.models import GATE_PLAIN
from mystery.models import GATE_POLL
from mystery.models import GATED_KINDS
from mystery.models import PollSpec
from mystery.models import StageDefinition


@dataclass(slots=True)
class Brain:
    stages: list[StageDefinition] = field(default_factory=list)
    gate_patterns: dict[str, list[re.Pattern]] = field(default_factory=dict)
    gate_text: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_GATE_TEXT))
    roast_pattern: re.Pattern | None = None
    roast_pool: list[str] = field(default_factory=list)
    fortunes: list[str] = field(default_factory=list)
    ambient: list[str] = field(default_factory=list)
    finale_room_welcome: str = DEFAULT_FINALE_ROOM_WELCOME
    persona_prompt: str = DEFAULT_PERSONA_PROMPT

    def stage(self, number: int) -> StageDefinition | None:
        # First match wins on duplicate numbers.
        for stage_obj in self.stages:
            if stage_obj.number == int(number):
                return stage_obj
        return None

    def text(self, key: str, **fmt: Any) -> str:
        template = self.gate_text.get(key) or DEFAULT_GATE_TEXT.get(key, "")
        try:
            return template.format(**fmt)
        except (KeyError, IndexError, ValueError):
            return template


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for item in value:
        text = str(item or "").strip()
        if text:
            out.append(text)
    return out


def _compile(pattern: str, *, where: str, warnings: list[str]) -> re.Pattern | None:
    try:
        return re.compile(pattern, re.I)
    except re.error as exc:
        warnings.append(f"invalid pattern in {where}: {pattern!r} ({exc})")
        return None


def _compile_all(patterns: list[str], *, where: str, warnings: list[str]) -> list[re.Pattern]:
    out: list[re.Pattern] = []
    for raw in patterns:
        rx = _compile(raw, where=where, warnings=warnings)
        if rx is not None:
            out.append(rx)
    return out


def _parse_time_window(value: Any) -> tuple[int, int, int, int] | None:
    if value is None:
        return None
    if isinstance(value, str):
        m = re.fullmatch(r"\s*([01]?\d|2[0-3]):([0-5]\d)\s*-\s*([01]?\d|2[0-3]):([0-5]\d)\s*", value)
        if not m:
            raise ValueError(f"Invalid time window: {value!r}")
        return (int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4)))
    if isinstance(value, (list, tuple)) and len(value) == 4:
        sh, sm, eh, em = (int(x) for x in value)
        if not (0 <= sh <= 23 and 0 <= eh <= 23 and 0 <= sm <= 59 and 0 <= em <= 59):
            raise ValueError(f"Time window out of range: {value!r}")
        return (sh, sm, eh, em)
    raise ValueError(f"Invalid time window: {value!r}")


def _parse_stage(raw: dict[str, Any], *, gate_text: dict[str, str], warnings: list[str]) -> StageDefinition | None:
    try:
        number = int(raw.get("number"))
    except (TypeError, ValueError):
        warnings.append(f"stage without a numeric 'number': {raw!r:.80}")
        return None

    where = f"stage {number}"
    triggers = _compile_all(_as_str_list(raw.get("triggers")), where=where, warnings=warnings)
    if not triggers:
        warnings.append(f"{where} has no usable triggers; skipped")
        return None

    gate_kind = str(raw.get("gate") or raw.get("gate_kind") or GATE_PLAIN).strip().lower()
    if gate_kind not in GATE_KINDS:
        warnings.append(f"{where} has unknown gate kind {gate_kind!r}; using {GATE_PLAIN!r}")
        gate_kind = GATE_PLAIN

    try:
        time_window = _parse_time_window(raw.get("time_window", raw.get("timeWindow")))
    except ValueError as exc:
        warnings.append(f"{where}: {exc}; skipped")
        return None

    requires_raw = raw.get("requires_gate", raw.get("requiresGate"))
    requires_gate = bool(requires_raw) if requires_raw is not None else gate_kind in GATED_KINDS

    poll: PollSpec | None = None
    if gate_kind == GATE_POLL:
        poll_raw = raw.get("poll") if isinstance(raw.get("poll"), dict) else {}
        options = _as_str_list(poll_raw.get("options")) or list(DEFAULT_POLL_OPTIONS)
        if len(options) != 2 or options[0] == options[1]:
            warnings.append(f"{where}: poll needs exactly two distinct options; using defaults")
            options = list(DEFAULT_POLL_OPTIONS)
        poll = PollSpec(
            option_a=options[0],
            option_b=options[1],
            outcome_a_reply=str(poll_raw.get("outcome_a_reply") or gate_text["poll_outcome_a"]),
            outcome_b_reply=str(poll_raw.get("outcome_b_reply") or gate_text["poll_outcome_b"]),
        )

    task_prompt = str(raw.get("task_prompt") or raw.get("taskPrompt") or "").strip() or None
    locked = str(raw.get("time_locked_reply") or raw.get("timeLockedReply") or "").strip() or None
    response = str(raw.get("response") or "").strip()
    if not response and gate_kind != GATE_FINALE:
        warnings.append(f"{where} has an empty response")

    return StageDefinition(
        number=number,
        triggers=triggers,
        response=response,
        gate_kind=gate_kind,
        hints=_as_str_list(raw.get("hints")),
        task_prompt=task_prompt,
        time_window=time_window,
        time_locked_reply=locked,
        requires_gate=requires_gate,
        poll=poll,
    )


def parse_brain(payload: dict[str, Any]) -> tuple[Brain, list[str]]:
    warnings: list[str] = []

    gate_text = dict(DEFAULT_GATE_TEXT)
    raw_text = payload.get("gate_text") if isinstance(payload.get("gate_text"), dict) else {}
    for key, value in raw_text.items():
        if key in gate_text and str(value or "").strip():
            gate_text[key] = str(value)

    raw_patterns = payload.get("gate_patterns") if isinstance(payload.get("gate_patterns"), dict) else {}
    gate_patterns: dict[str, list[re.Pattern]] = {}
    for kind, defaults in DEFAULT_GATE_PATTERNS.items():
        listed = _as_str_list(raw_patterns.get(kind)) or list(defaults)
        compiled = _compile_all(listed, where=f"gate_patterns.{kind}", warnings=warnings)
        if not compiled:
            compiled = _compile_all(list(defaults), where=f"gate_patterns.{kind}", warnings=warnings)
        gate_patterns[kind] = compiled

    stages: list[StageDefinition] = []
    seen: set[int] = set()
    for raw in payload.get("stages") or []:
        if not isinstance(raw, dict):
            warnings.append("non-mapping entry in stages; skipped")
            continue
        stage_obj = _parse_stage(raw, gate_text=gate_text, warnings=warnings)
        if stage_obj is None:
            continue
        if stage_obj.number in seen:
            warnings.append(f"duplicate stage number {stage_obj.number}; first entry wins")
        seen.add(stage_obj.number)
        stages.append(stage_obj)

    roast_raw = str(payload.get("roast_pattern") or DEFAULT_ROAST_PATTERN)
    roast_pattern = _compile(roast_raw, where="roast_pattern", warnings=warnings)

    brain = Brain(
        stages=stages,
        gate_patterns=gate_patterns,
        gate_text=gate_text,
        roast_pattern=roast_pattern,
        roast_pool=_as_str_list(payload.get("roast_pool")),
        fortunes=_as_str_list(payload.get("fortunes")),
        ambient=_as_str_list(payload.get("ambient")),
        finale_room_welcome=str(payload.get("finale_room_welcome") or DEFAULT_FINALE_ROOM_WELCOME),
        persona_prompt=str(payload.get("persona_prompt") or DEFAULT_PERSONA_PROMPT).strip(),
    )
    return brain, warnings


def empty_brain() -> Brain:
    brain, _warnings = parse_brain({})
    return brain


def load_brain(path: str | Path | None) -> tuple[Brain, list[str]]:
    """
    Returns (brain, warnings). A missing or unreadable file yields an empty
    stage table, which leaves the mystery inactive.
    """
    if not path:
        return (empty_brain(), ["brain path missing; mystery inactive"])

    p = Path(path)
    if not p.exists():
        return (empty_brain(), [f"brain file not found at {p}; mystery inactive"])

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except Exception as exc:
        return (empty_brain(), [f"failed to read brain from {p}: {exc}; mystery inactive"])

    if not isinstance(payload, dict):
        return (empty_brain(), [f"invalid brain format in {p}; mystery inactive"])

    return parse_brain(payload)


class BrainSource:
    """Loads the brain file and reloads it when its mtime changes."""

    def __init__(self, path: str | Path | None) -> None:
        self.path = str(path) if path else ""
        self._brain: Brain | None = None
        self._mtime: float | None = None

    def _current_mtime(self) -> float | None:
        try:
            return Path(self.path).stat().st_mtime if self.path else None
        except OSError:
            return None

    def get(self) -> Brain:
        mtime = self._current_mtime()
        if self._brain is not None and mtime == self._mtime:
            return self._brain

        brain, warnings = load_brain(self.path)
        for warning in warnings:
            print(f"[Brain] {warning}")
        print(f"[Brain] loaded stages={len(brain.stages)} path={self.path or '(none)'}")
        self._brain = brain
        self._mtime = mtime
        return brain
