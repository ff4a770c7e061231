"""Shared utilities, types, and Protocols for DB mixins and store consumers."""

from __future__ import annotations

import contextlib
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pkgtracker.errors import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from pkgtracker.core import Packager
    from pkgtracker.types.core import MarkUnit, WorkUnit


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@contextlib.contextmanager
def _store_errors(db: DBMixinProtocol, action: str) -> Iterator[None]:
    """Roll back and re-raise any ``sqlite3.Error`` as ``StoreError``.

    The message keeps the SQLite text so it can be shown to operators.
    """
    try:
        yield
    except sqlite3.Error as exc:
        if db._conn is not None:
            with contextlib.suppress(sqlite3.Error):
                db._conn.rollback()
        msg = f"Failed to {action}: {exc}"
        raise StoreError(msg) from exc


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self._package_id(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by PackageDB at composition time.
    """

    db_path: Path
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def _package_id(self, pkgname: str) -> int | None: ...


class StatusStore(Protocol):
    """What the completion workflow and the dashboard need from persistence.

    ``PackageDB`` is the SQLite implementation; tests substitute doubles.
    Every method raises ``StoreError`` on persistence failure.
    """

    def find_packager(self, pkgname: str) -> Packager: ...

    def drop_assignment(self, pkgname: str, tg_uid: int) -> bool: ...

    def remove_marks(self, pkgname: str, match: Iterable[str] | None = None) -> list[str]: ...

    def get_working_list(self) -> list[WorkUnit]: ...

    def get_mark_list(self) -> list[MarkUnit]: ...
