"""Core database operations for the package tracker.

Single source of truth for all SQLite operations. Both the CLI and the
dashboard import from this module. No daemon, just direct SQLite with WAL mode.

Covers packagers, packages, assignments and marks. The completion workflow
(``pkgtracker.workflow``) only talks to ``PackageDB`` through the
``StatusStore`` Protocol.

Convention-based discovery: each deployment has a `.pkgtracker/` directory
containing `pkgtracker.db` (SQLite) and `config.json` (secrets, chat, port).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from pkgtracker.db_assignments import AssignmentsMixin
from pkgtracker.db_base import _store_errors
from pkgtracker.db_marks import MarksMixin
from pkgtracker.errors import NotFoundError, StoreError
from pkgtracker.types.core import PackagerDict, TrackerConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------


class PackageStatus(StrEnum):
    """Statuses a packager may report when finishing with a package."""

    FTBFS = "ftbfs"
    LEAF = "leaf"


class Mark(StrEnum):
    """Marks meaning "this package still needs attention"."""

    OUTDATED = "outdated"
    STUCK = "stuck"
    READY = "ready"
    OUTDATED_DEP = "outdated_dep"
    MISSING_DEP = "missing_dep"
    UNKNOWN = "unknown"
    IGNORE = "ignore"
    FAILING = "failing"


ATTENTION_MARKS: tuple[str, ...] = tuple(m.value for m in Mark)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

TRACKER_DIR_NAME = ".pkgtracker"
DB_FILENAME = "pkgtracker.db"
CONFIG_FILENAME = "config.json"

DEFAULT_PORT = 8380
DEFAULT_API_BASE = "https://api.telegram.org"


def find_tracker_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .pkgtracker/ directory.

    Returns the .pkgtracker/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / TRACKER_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {TRACKER_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(tracker_dir: Path) -> TrackerConfig:
    """Read .pkgtracker/config.json. Returns defaults if missing or corrupt."""
    defaults = TrackerConfig(version=1)
    config_path = tracker_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("Config %s is not a JSON object, using defaults", config_path)
        return defaults
    config: TrackerConfig = result  # type: ignore[assignment]
    return config


def write_config(tracker_dir: Path, config: dict[str, Any] | TrackerConfig) -> None:
    """Write .pkgtracker/config.json."""
    config_path = tracker_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


@dataclass
class Settings:
    """Runtime settings resolved from config.json and the environment."""

    token: str = ""
    bot_token: str = ""
    chat_id: str = ""
    port: int = DEFAULT_PORT
    api_base: str = DEFAULT_API_BASE


def _config_str(config: TrackerConfig, key: str, default: str = "", *, allow_int: bool = False) -> str:
    """Return a string setting; null or wrongly-typed values count as unset."""
    value = config.get(key)
    if isinstance(value, str):
        return value
    if allow_int and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if value is not None:
        logger.warning("Ignoring non-string %s value %r in config", key, value)
    return default


def resolve_settings(tracker_dir: Path) -> Settings:
    """Resolve settings: ``PKGTRACKER_*`` env vars win over config.json."""
    config = read_config(tracker_dir)

    raw_port = config.get("port", DEFAULT_PORT)
    try:
        port = int(raw_port)
    except (TypeError, ValueError):
        logger.warning("Invalid port value %r in config; using default %d", raw_port, DEFAULT_PORT)
        port = DEFAULT_PORT
    if not (1 <= port <= 65535):
        logger.warning("Port %d out of range (1-65535) in config; using default %d", port, DEFAULT_PORT)
        port = DEFAULT_PORT

    return Settings(
        token=os.getenv("PKGTRACKER_TOKEN") or _config_str(config, "token"),
        bot_token=os.getenv("PKGTRACKER_BOT_TOKEN") or _config_str(config, "bot_token"),
        chat_id=os.getenv("PKGTRACKER_CHAT_ID") or _config_str(config, "chat_id", allow_int=True),
        port=port,
        api_base=_config_str(config, "api_base", DEFAULT_API_BASE).rstrip("/") or DEFAULT_API_BASE,
    )


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS packager (
    tg_uid  INTEGER PRIMARY KEY,
    alias   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pkg (
    id    INTEGER PRIMARY KEY,
    name  TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS assignment (
    id          INTEGER PRIMARY KEY,
    pkg         INTEGER NOT NULL UNIQUE REFERENCES pkg(id),
    assignee    INTEGER NOT NULL REFERENCES packager(tg_uid),
    assigned_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_assignment_assignee ON assignment(assignee);

CREATE TABLE IF NOT EXISTS mark (
    id        INTEGER PRIMARY KEY,
    name      TEXT NOT NULL,
    marked_by INTEGER REFERENCES packager(tg_uid),
    marked_at TEXT NOT NULL,
    msg_id    INTEGER NOT NULL DEFAULT 0,
    comment   TEXT,
    for_pkg   INTEGER NOT NULL REFERENCES pkg(id),
    UNIQUE(for_pkg, name)
);

CREATE INDEX IF NOT EXISTS idx_mark_pkg ON mark(for_pkg);
"""

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Packager:
    tg_uid: int
    alias: str

    def to_dict(self) -> PackagerDict:
        return {"tg_uid": self.tg_uid, "alias": self.alias}


# ---------------------------------------------------------------------------
# PackageDB
# ---------------------------------------------------------------------------


class PackageDB(AssignmentsMixin, MarksMixin):
    """Direct SQLite operations. Implements ``StatusStore``."""

    def __init__(self, db_path: str | Path, *, check_same_thread: bool = True) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> PackageDB:
        """Create a PackageDB by discovering .pkgtracker/ from project_path (or cwd)."""
        tracker_dir = find_tracker_root(project_path)
        db = cls(tracker_dir / DB_FILENAME, check_same_thread=check_same_thread)
        db.initialize()
        return db

    def __enter__(self) -> PackageDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version.

        An existing database must already be at CURRENT_SCHEMA_VERSION;
        there is no migration path.
        """
        with _store_errors(self, "initialize database"):
            current_version = self.get_schema_version()
            if current_version == 0:
                self.conn.executescript(SCHEMA_SQL)
                self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
                self.conn.commit()
                logger.debug("Created schema v%d at %s", CURRENT_SCHEMA_VERSION, self.db_path)
            elif current_version != CURRENT_SCHEMA_VERSION:
                msg = f"Unsupported schema version {current_version} in {self.db_path} (expected {CURRENT_SCHEMA_VERSION})"
                raise StoreError(msg)

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def reconnect(self, *, check_same_thread: bool = True) -> None:
        """Close and reopen the connection, e.g. to hand it to a server thread."""
        self.close()
        self._check_same_thread = check_same_thread

    # -- Packagers and packages ---------------------------------------------

    def add_packager(self, tg_uid: int, alias: str) -> Packager:
        """Register a packager, or update the alias of an existing one."""
        alias = alias.strip()
        if not alias:
            msg = "Packager alias cannot be empty"
            raise ValueError(msg)
        with _store_errors(self, f"add packager {tg_uid}"):
            self.conn.execute(
                "INSERT INTO packager (tg_uid, alias) VALUES (?, ?) ON CONFLICT(tg_uid) DO UPDATE SET alias = excluded.alias",
                (tg_uid, alias),
            )
            self.conn.commit()
        return Packager(tg_uid=tg_uid, alias=alias)

    def get_packager(self, tg_uid: int) -> Packager:
        with _store_errors(self, f"get packager {tg_uid}"):
            row = self.conn.execute("SELECT tg_uid, alias FROM packager WHERE tg_uid = ?", (tg_uid,)).fetchone()
        if row is None:
            msg = f"Packager not found: {tg_uid}"
            raise NotFoundError(msg)
        return Packager(tg_uid=row["tg_uid"], alias=row["alias"])

    def add_package(self, name: str) -> int:
        """Insert a package if it does not exist yet; return its row id."""
        name = name.strip()
        if not name:
            msg = "Package name cannot be empty"
            raise ValueError(msg)
        with _store_errors(self, f"add package {name}"):
            self.conn.execute("INSERT OR IGNORE INTO pkg (name) VALUES (?)", (name,))
            self.conn.commit()
            pkg_id = self._package_id(name)
        if pkg_id is None:  # pragma: no cover
            msg = f"Package {name} vanished after insert"
            raise StoreError(msg)
        return pkg_id

    def _package_id(self, pkgname: str) -> int | None:
        row = self.conn.execute("SELECT id FROM pkg WHERE name = ?", (pkgname,)).fetchone()
        return None if row is None else int(row["id"])
