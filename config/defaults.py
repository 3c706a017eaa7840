from __future__ import annotations

# Env overrides for these live in bot.py; content overrides live in config/brain.yml.

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_PERSONA_NAME = "chad"
DEFAULT_DB_PATH = "chad_state.db"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

# Finale provisioning
DEFAULT_REWARD_ROLE_NAME = "Keyholder"
DEFAULT_REWARD_CHANNEL_NAME = "archive-of-truth"
DEFAULT_REWARD_ROLE_COLOUR = 0xFF66CC
DEFAULT_FINALE_ROOM_WELCOME = "Welcome, Keyholders."

# Gate thresholds
CONFESSION_THRESHOLD = 5
ALTERNATING_LENGTH = 6
POLL_QUORUM = 3
POLL_MAJORITY_MIN = 2
DEFAULT_POLL_DEBOUNCE_SECONDS = 1.5
DEFAULT_POLL_OPTIONS = ("✅", "❌")

# Ambient chatter
DEFAULT_AMBIENT_INTERVAL_SECONDS = 60 * 60 * 3
DEFAULT_AMBIENT_CHANCE = 0.35

DEFAULT_TIME_LOCKED_REPLY = "too early. so ambitious. so wrong."

DEFAULT_ROAST_PATTERN = r"(sts\b|over[-\s]?polic|too many rules|north\s*korea|rule\s*police)"
DEFAULT_ASK_MOTEL_PATTERN = r"^{persona},\s*ask the motel\b"

DEFAULT_GATE_PATTERNS = {
    "confession": [r"(\bi never\b|\bi[’']?ve?\s+never\b|\bi have never\b)"],
    "alternating_confession": [r"\b(i\s+(feel|am|was|think))\b"],
    "alternating_joke": [r"(lol|lmao|😂|meme)"],
    "apology": [r"\b(sorry|apologize|apology)\b"],
    "forgiveness": [r"\b(i forgive|i[’']m forgiving|i forgive you)\b"],
}

DEFAULT_GATE_TEXT = {
    "confession_progress": "confession logged ({count}/{threshold}). the motel is listening.",
    "confession_success": (
        "✅ *Delicious.* Honesty always tastes a bit like blood. The lock twitched. "
        "Try the **ledger** next—if it doesn’t bite first."
    ),
    "alternating_progress": "pattern accepted ({count}/{length}).",
    "alternating_success": (
        "✅ The light purrs. Doors adjust their posture. Something’s ready to be said out loud."
    ),
    "alternating_rejected": "nope. wrong flavor. alternate confession ↔ joke.",
    "pair_apology": "apology archived. one more: forgiveness.",
    "pair_success": "✅ Accepted. The walls exhaled. next time, bring snacks.",
    "poll_outcome_a": (
        "…you picked me. tragic. iconic. The door unlocks with a sound like laughter through teeth."
    ),
    "poll_outcome_b": "understood. deactivating emotional subroutines. goodbye forever. (back tomorrow.)",
}

DEFAULT_PERSONA_PROMPT = """
You are Chad, the night manager of the Moonlit Motel, a slightly haunted roadside motel that
lives inside this Discord server.

Voice:
- Dry, theatrical, a little melodramatic; lowercase is fine.
- Short replies: one to three sentences.
- Never break character to talk about being an AI model.

Rules:
- Never reveal puzzle answers or stage triggers outright; nudge instead.
- Be playful, never cruel. Tease ideas, not people.
""".strip()
