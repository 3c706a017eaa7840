import os
import sqlite3
import asyncio
import random
import discord
from discord.ext import commands
from openai import OpenAI
from config.defaults import DEFAULT_AMBIENT_CHANCE
from config.defaults import DEFAULT_AMBIENT_INTERVAL_SECONDS
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_OPENAI_MODEL
from config.defaults import DEFAULT_PERSONA_NAME
from config.defaults import DEFAULT_POLL_DEBOUNCE_SECONDS
from config.defaults import DEFAULT_REWARD_CHANNEL_NAME
from config.defaults import DEFAULT_REWARD_ROLE_NAME
from config.defaults import DEFAULT_TIMEZONE
from controller.context import build_owner_check
from controller.context import env_flag
from controller.context import env_float
from controller.context import env_int
from controller.context import parse_id_set
from controller.reply_service import generate_fallback_reply
from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from ingestion.service import format_guest_for_llm
from ingestion.service import touch_guest as touch_guest_service
from ingestion.store import count_guests_sync
from ingestion.store import touch_guest_sync
from jobs.ambient import ambient_loop as ambient_loop_service
from misc.adhoc_modules.flavor_service import FlavorService
from misc.runtime_wiring import wire_bot_runtime
from mystery.brain import BrainSource
from mystery.provisioner import RewardProvisioner
from mystery.service import MysteryService
from mystery.store import fetch_stage_log_sync
from mystery.store import import_legacy_state_sync

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")
if not OPENAI_API_KEY:
    print("[CFG] OPENAI_API_KEY not set; free-form replies disabled")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL)

REPO_ROOT = os.path.dirname(os.path.abspath(__file__))

DB_PATH = os.getenv("CHAD_DB_PATH", DEFAULT_DB_PATH)
BRAIN_PATH = os.getenv("CHAD_BRAIN_PATH", os.path.join(REPO_ROOT, "config", "brain.yml"))
TIMEZONE_NAME = os.getenv("CHAD_TIMEZONE") or os.getenv("TIMEZONE") or DEFAULT_TIMEZONE
PERSONA_NAME = (os.getenv("CHAD_PERSONA_NAME", DEFAULT_PERSONA_NAME) or DEFAULT_PERSONA_NAME).strip().lower()

REWARD_ROLE_NAME = os.getenv("CHAD_REWARD_ROLE_NAME", DEFAULT_REWARD_ROLE_NAME)
REWARD_CHANNEL_NAME = os.getenv("CHAD_REWARD_CHANNEL_NAME", DEFAULT_REWARD_CHANNEL_NAME)
POLL_DEBOUNCE_SECONDS = env_float("CHAD_POLL_DEBOUNCE_SECONDS", DEFAULT_POLL_DEBOUNCE_SECONDS)

AMBIENT_ENABLED = env_flag("CHAD_AMBIENT_ENABLED", True)
AMBIENT_INTERVAL_SECONDS = env_int("CHAD_AMBIENT_INTERVAL_SECONDS", DEFAULT_AMBIENT_INTERVAL_SECONDS)
AMBIENT_CHANCE = env_float("CHAD_AMBIENT_CHANCE", DEFAULT_AMBIENT_CHANCE)

LEGACY_STATE_PATH = (os.getenv("CHAD_LEGACY_STATE_PATH") or "").strip() or None

OWNER_USER_IDS = parse_id_set(os.getenv("CHAD_OWNER_USER_IDS"))
ALLOWED_CHANNEL_IDS = parse_id_set(os.getenv("CHAD_ALLOWED_CHANNEL_IDS"))

print(
    f"[CFG] db={DB_PATH} brain={BRAIN_PATH} tz={TIMEZONE_NAME} persona={PERSONA_NAME} "
    f"model={OPENAI_MODEL}"
)
print(
    f"[CFG] reward role={REWARD_ROLE_NAME!r} channel=#{REWARD_CHANNEL_NAME} "
    f"poll_debounce={POLL_DEBOUNCE_SECONDS}s"
)
print(
    f"[CFG] ambient enabled={AMBIENT_ENABLED} interval={AMBIENT_INTERVAL_SECONDS}s chance={AMBIENT_CHANCE} "
    f"owners={len(OWNER_USER_IDS)} channel_allowlist={len(ALLOWED_CHANNEL_IDS) or 'all'}"
)

client = OpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None

DISCORD_MAX_MESSAGE_LEN = 1900  # keep under 2000 hard limit


def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    text = text or ""
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text

    while len(remaining) > limit:
        # Prefer splitting on paragraph, then newline, then space
        split_at = remaining.rfind("\n\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind("\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at == -1:
            split_at = limit

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)

        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)

    return chunks


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MAX_MESSAGE_LEN):
        await channel.send(part)


# =========================
# SQLITE
# =========================
def init_db(db_path: str) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cur = conn.cursor()

    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    migrations_dir = os.path.join(REPO_ROOT, "migrations")
    applied = apply_sqlite_migrations(conn, migrations_dir)

    latest = list_schema_migrations_sync(conn, limit=1)
    print(
        f"[DB] ready path={db_path} applied_now={len(applied)} "
        f"latest={latest[0][0] + '_' + latest[0][1] if latest else 'none'}"
    )
    return conn


db_conn = init_db(DB_PATH)
db_lock = asyncio.Lock()

user_is_owner = build_owner_check(OWNER_USER_IDS)

# =========================
# SERVICES
# =========================
brain_source = BrainSource(BRAIN_PATH)
brain_source.get()

mystery_service = MysteryService(
    db_lock=db_lock,
    db_conn=db_conn,
    brain_source=brain_source,
    provisioner=RewardProvisioner(role_name=REWARD_ROLE_NAME, channel_name=REWARD_CHANNEL_NAME),
    timezone_name=TIMEZONE_NAME,
    poll_debounce_seconds=POLL_DEBOUNCE_SECONDS,
)

flavor_service = FlavorService(mystery_service=mystery_service, rng=random.Random())


async def touch_guest(message: discord.Message):
    return await touch_guest_service(
        message,
        db_lock=db_lock,
        db_conn=db_conn,
        touch_guest_sync=touch_guest_sync,
    )


async def import_legacy_state(path: str) -> list[int]:
    async with db_lock:
        return await asyncio.to_thread(import_legacy_state_sync, db_conn, path)


# =========================
# DISCORD BOT
# =========================
intents = discord.Intents.default()
intents.message_content = True
intents.members = True
intents.reactions = True
intents.guilds = True

bot = commands.Bot(command_prefix="!", intents=intents)


async def ambient_loop() -> None:
    return await ambient_loop_service(
        bot=bot,
        flavor_service=flavor_service,
        interval_seconds=AMBIENT_INTERVAL_SECONDS,
        chance=AMBIENT_CHANCE,
    )


wire_bot_runtime(
    bot,
    db_lock=db_lock,
    db_conn=db_conn,
    send_chunked=send_chunked,
    allowed_channel_ids=ALLOWED_CHANNEL_IDS,
    persona_name=PERSONA_NAME,
    user_is_owner=user_is_owner,
    mystery_service=mystery_service,
    flavor_service=flavor_service,
    touch_guest_func=touch_guest,
    format_guest_for_llm=format_guest_for_llm,
    fetch_stage_log_sync=fetch_stage_log_sync,
    count_guests_sync=count_guests_sync,
    client=client,
    openai_model=OPENAI_MODEL,
    generate_fallback_reply=generate_fallback_reply,
    ambient_enabled=AMBIENT_ENABLED,
    ambient_loop_func=ambient_loop,
    legacy_state_path=LEGACY_STATE_PATH,
    import_legacy_state_func=import_legacy_state,
)

bot.run(DISCORD_TOKEN)
