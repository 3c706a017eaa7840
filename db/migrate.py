from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.py$")


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    path: Path

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


def discover_migrations(migrations_dir: str | Path) -> list[Migration]:
    base = Path(migrations_dir)
    if not base.is_dir():
        raise RuntimeError(f"Migrations directory not found: {migrations_dir}")
    found: list[Migration] = []
    for p in sorted(base.iterdir()):
        m = MIGRATION_RE.match(p.name)
        if p.is_file() and m:
            found.append(Migration(version=m.group(1), name=m.group(2), path=p))
    versions = [mig.version for mig in found]
    if len(versions) != len(set(versions)):
        raise RuntimeError(f"Duplicate migration versions in {migrations_dir}")
    return found


def _ensure_migration_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _run_upgrade(conn: sqlite3.Connection, migration: Migration) -> None:
    spec = importlib.util.spec_from_file_location(f"chad_migration_{migration.path.stem}", str(migration.path))
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Could not load migration module: {migration.path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise RuntimeError(f"Migration missing upgrade(conn): {migration.path}")
    upgrade(conn)


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str | Path) -> list[str]:
    """Apply pending migrations in version order. Returns the versions applied now."""
    _ensure_migration_table(conn)
    applied = {
        str(version): (str(name), str(checksum))
        for version, name, checksum in conn.execute("SELECT version, name, checksum FROM schema_migrations")
    }

    newly_applied: list[str] = []
    for migration in discover_migrations(migrations_dir):
        checksum = migration.checksum
        if migration.version in applied:
            old_name, old_checksum = applied[migration.version]
            if old_name != migration.name or old_checksum != checksum:
                raise RuntimeError(
                    f"Migration {migration.version} was applied with different content "
                    f"(recorded name={old_name}, file name={migration.name})."
                )
            continue

        print(f"[DB] Applying migration {migration.version}_{migration.name}")
        _run_upgrade(conn, migration)
        conn.execute(
            "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
            (migration.version, migration.name, checksum, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        newly_applied.append(migration.version)
    return newly_applied


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 50) -> list[tuple[str, str, str]]:
    try:
        cur = conn.execute(
            "SELECT version, name, applied_at_utc FROM schema_migrations ORDER BY version DESC LIMIT ?",
            (max(1, min(int(limit), 500)),),
        )
        return cur.fetchall()
    except sqlite3.OperationalError:
        return []
