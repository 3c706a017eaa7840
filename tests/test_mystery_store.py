from __future__ import annotations

import json
import sqlite3
import tempfile
import unittest
from pathlib import Path

from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from mystery.models import CommunityProgress
from mystery.models import ConfessionGate
from mystery.store import fetch_progress_payload_sync
from mystery.store import fetch_progress_sync
from mystery.store import fetch_stage_log_sync
from mystery.store import get_or_create_progress_sync
from mystery.store import import_legacy_state_sync
from mystery.store import insert_stage_log_sync
from mystery.store import save_progress_sync


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _migrations_dir() -> str:
    return str(_repo_root() / "migrations")


class MigrationTests(unittest.TestCase):
    def test_migrations_idempotent(self):
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        first = apply_sqlite_migrations(conn, _migrations_dir())
        second = apply_sqlite_migrations(conn, _migrations_dir())
        self.assertTrue(first)
        self.assertEqual(second, [])

        cur = conn.cursor()
        for table in ("mystery_progress", "mystery_stage_log", "guestbook"):
            cur.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
            self.assertIsNotNone(cur.fetchone(), table)

        latest = list_schema_migrations_sync(conn, limit=1)
        self.assertEqual(latest[0][0], first[-1])

    def test_edited_migration_is_refused(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "0001_example.py"
            path.write_text(
                "def upgrade(conn):\n    conn.execute('CREATE TABLE example (id INTEGER)')\n",
                encoding="utf-8",
            )
            conn = sqlite3.connect(":memory:")
            apply_sqlite_migrations(conn, tmp)

            path.write_text(
                "def upgrade(conn):\n    conn.execute('CREATE TABLE example (id TEXT)')\n",
                encoding="utf-8",
            )
            with self.assertRaises(RuntimeError):
                apply_sqlite_migrations(conn, tmp)


class ProgressStoreTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())

    def tearDown(self):
        self.conn.close()

    def test_get_or_create_starts_at_stage_one(self):
        self.assertIsNone(fetch_progress_sync(self.conn, 1))
        progress = get_or_create_progress_sync(self.conn, 1)
        self.assertEqual(progress.stage, 1)
        self.assertIsNotNone(fetch_progress_payload_sync(self.conn, 1))

    def test_guilds_are_isolated(self):
        save_progress_sync(self.conn, 1, CommunityProgress(stage=4))
        save_progress_sync(self.conn, 2, CommunityProgress(stage=8))
        self.assertEqual(fetch_progress_sync(self.conn, 1).stage, 4)
        self.assertEqual(fetch_progress_sync(self.conn, 2).stage, 8)

    def test_save_overwrites_payload(self):
        progress = CommunityProgress(stage=3)
        progress.open_gate(ConfessionGate(confessors={7}))
        save_progress_sync(self.conn, 1, progress)
        progress.advance()
        save_progress_sync(self.conn, 1, progress)

        payload = json.loads(fetch_progress_payload_sync(self.conn, 1))
        self.assertEqual(payload["stage"], 4)
        self.assertEqual(payload["gates"], {})

    def test_stage_log_is_newest_first(self):
        for to_stage in (2, 3, 4):
            insert_stage_log_sync(
                self.conn,
                guild_id=1,
                from_stage=to_stage - 1,
                to_stage=to_stage,
                reason="trigger:plain",
                actor_user_id=5,
            )
        insert_stage_log_sync(self.conn, guild_id=2, from_stage=1, to_stage=2, reason="x", actor_user_id=None)

        rows = fetch_stage_log_sync(self.conn, 1, limit=2)
        self.assertEqual([row["to_stage"] for row in rows], [4, 3])
        self.assertEqual(fetch_stage_log_sync(self.conn, 2)[0]["actor_user_id"], None)


class LegacyImportTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "state.json"

    def tearDown(self):
        self.conn.close()
        self.tmp.cleanup()

    def test_import_skips_existing_guilds(self):
        save_progress_sync(self.conn, 222, CommunityProgress(stage=2))
        self.path.write_text(
            json.dumps(
                {
                    "111": {"stage": 6, "gates": {"s6": {"sequence": ["conf"]}}, "participants": {"5": True}},
                    "222": {"stage": 9},
                }
            ),
            encoding="utf-8",
        )
        imported = import_legacy_state_sync(self.conn, self.path)
        self.assertEqual(imported, [111])
        self.assertEqual(fetch_progress_sync(self.conn, 111).current_gate().sequence, ["confession"])
        self.assertEqual(fetch_progress_sync(self.conn, 222).stage, 2)

        self.assertEqual(import_legacy_state_sync(self.conn, self.path), [])

    def test_missing_file_imports_nothing(self):
        self.assertEqual(import_legacy_state_sync(self.conn, self.path), [])


if __name__ == "__main__":
    unittest.main()
