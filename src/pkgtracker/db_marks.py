"""MarksMixin: advisory tags attached to packages.

All methods access ``self.conn`` and ``self._package_id()`` via
Python's MRO when composed into ``PackageDB``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pkgtracker.db_base import DBMixinProtocol, _now_iso, _store_errors
from pkgtracker.types.core import ISOTimestamp, MarkRecord, MarkUnit

if TYPE_CHECKING:
    from collections.abc import Iterable

_MARK_NAME_RE = re.compile(r"^[a-z0-9_]+$")
_MAX_MARK_NAME_LENGTH = 64


def normalize_mark_name(name: str) -> str:
    """Lowercase and validate a mark name; raises ``ValueError`` if unusable."""
    normalized = name.strip().lower()
    if not normalized:
        msg = "Mark name cannot be empty"
        raise ValueError(msg)
    if len(normalized) > _MAX_MARK_NAME_LENGTH:
        msg = f"Mark name must be at most {_MAX_MARK_NAME_LENGTH} characters"
        raise ValueError(msg)
    if not _MARK_NAME_RE.match(normalized):
        msg = f"Invalid mark name {name!r}: use lowercase letters, digits and underscores"
        raise ValueError(msg)
    return normalized


class MarksMixin(DBMixinProtocol):
    """Add, list and remove marks. A package carries each mark name at most once."""

    if TYPE_CHECKING:

        def add_package(self, name: str) -> int: ...

    def add_mark(
        self,
        pkgname: str,
        name: str,
        *,
        marked_by: int | None = None,
        msg_id: int = 0,
        comment: str | None = None,
    ) -> bool:
        """Attach mark *name* to *pkgname*. Returns False if it was already there."""
        normalized = normalize_mark_name(name)
        pkg_id = self.add_package(pkgname)
        with _store_errors(self, f"mark {pkgname} as {normalized}"):
            cursor = self.conn.execute(
                "INSERT INTO mark (name, marked_by, marked_at, msg_id, comment, for_pkg) "
                "VALUES (?, ?, ?, ?, ?, ?) ON CONFLICT(for_pkg, name) DO NOTHING",
                (normalized, marked_by, _now_iso(), msg_id, comment, pkg_id),
            )
            self.conn.commit()
        return cursor.rowcount > 0

    def get_marks(self, pkgname: str) -> list[str]:
        with _store_errors(self, f"get marks for {pkgname}"):
            rows = self.conn.execute(
                "SELECT mark.name FROM mark JOIN pkg ON pkg.id = mark.for_pkg WHERE pkg.name = ? ORDER BY mark.name",
                (pkgname,),
            ).fetchall()
        return [r["name"] for r in rows]

    def remove_marks(self, pkgname: str, match: Iterable[str] | None = None) -> list[str]:
        """Remove marks from *pkgname* in one transaction and return the removed names.

        With *match* (one name or several), only those marks are removed. An
        empty *match* removes nothing. A package with no row removes nothing.
        """
        if isinstance(match, str):
            match = (match,)
        names = None if match is None else sorted({str(m) for m in match})
        if names is not None and not names:
            return []
        with _store_errors(self, f"remove marks for {pkgname}"):
            pkg_id = self._package_id(pkgname)
            if pkg_id is None:
                return []
            if names is None:
                rows = self.conn.execute(
                    "DELETE FROM mark WHERE for_pkg = ? RETURNING name",
                    (pkg_id,),
                ).fetchall()
            else:
                placeholders = ",".join("?" * len(names))
                rows = self.conn.execute(
                    f"DELETE FROM mark WHERE for_pkg = ? AND name IN ({placeholders}) RETURNING name",
                    [pkg_id, *names],
                ).fetchall()
            self.conn.commit()
        return sorted(r["name"] for r in rows)

    def get_mark_list(self) -> list[MarkUnit]:
        """Every package with at least one mark, and those marks."""
        with _store_errors(self, "get mark list"):
            rows = self.conn.execute(
                "SELECT pkg.name AS pkg, mark.name, mark.marked_by, mark.marked_at, mark.msg_id, mark.comment "
                "FROM mark JOIN pkg ON pkg.id = mark.for_pkg "
                "ORDER BY pkg.name, mark.marked_at, mark.name"
            ).fetchall()

        units: dict[str, MarkUnit] = {}
        for row in rows:
            unit = units.setdefault(row["pkg"], MarkUnit(pkg=row["pkg"], marks=[]))
            unit["marks"].append(
                MarkRecord(
                    name=row["name"],
                    marked_by=row["marked_by"],
                    marked_at=ISOTimestamp(row["marked_at"]),
                    msg_id=row["msg_id"],
                    comment=row["comment"],
                )
            )
        return list(units.values())
