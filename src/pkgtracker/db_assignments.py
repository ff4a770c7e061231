"""AssignmentsMixin: which packager is handling which package.

All methods access ``self.conn`` and ``self._package_id()`` via
Python's MRO when composed into ``PackageDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from pkgtracker.db_base import DBMixinProtocol, _now_iso, _store_errors
from pkgtracker.errors import NotFoundError
from pkgtracker.types.core import AssignedPackage, ISOTimestamp, WorkUnit

if TYPE_CHECKING:
    from pkgtracker.core import Packager

logger = logging.getLogger(__name__)


class AssignmentsMixin(DBMixinProtocol):
    """Assignment lookup, creation, and removal.

    At most one assignment exists per package; the schema enforces it
    with ``UNIQUE(pkg)`` so concurrent claims cannot both succeed.
    """

    if TYPE_CHECKING:

        def add_package(self, name: str) -> int: ...

    def find_packager(self, pkgname: str) -> Packager:
        """Return the packager currently assigned to *pkgname*.

        Raises ``NotFoundError`` when the package has no active assignment.
        """
        from pkgtracker.core import Packager

        with _store_errors(self, f"fetch packager for {pkgname}"):
            row = self.conn.execute(
                "SELECT p.tg_uid, p.alias FROM assignment a "
                "JOIN pkg ON pkg.id = a.pkg "
                "JOIN packager p ON p.tg_uid = a.assignee "
                "WHERE pkg.name = ?",
                (pkgname,),
            ).fetchone()
        if row is None:
            msg = f"No packager is assigned to {pkgname}"
            raise NotFoundError(msg)
        return Packager(tg_uid=row["tg_uid"], alias=row["alias"])

    def assign_package(self, pkgname: str, tg_uid: int) -> None:
        """Assign *pkgname* to the packager *tg_uid*, creating the package if needed.

        Re-assigning to the same packager is a no-op. Raises ``ValueError``
        if someone else already holds the package, ``NotFoundError`` if the
        packager is unknown.
        """
        with _store_errors(self, f"look up packager {tg_uid}"):
            known = self.conn.execute("SELECT 1 FROM packager WHERE tg_uid = ?", (tg_uid,)).fetchone()
        if known is None:
            msg = f"Packager not found: {tg_uid}"
            raise NotFoundError(msg)
        pkg_id = self.add_package(pkgname)
        with _store_errors(self, f"assign {pkgname} to {tg_uid}"):
            try:
                self.conn.execute(
                    "INSERT INTO assignment (pkg, assignee, assigned_at) VALUES (?, ?, ?)",
                    (pkg_id, tg_uid, _now_iso()),
                )
            except sqlite3.IntegrityError:
                self.conn.rollback()
                current = self.conn.execute("SELECT assignee FROM assignment WHERE pkg = ?", (pkg_id,)).fetchone()
                if current is not None and current["assignee"] == tg_uid:
                    return
                holder = current["assignee"] if current is not None else "?"
                msg = f"Cannot assign {pkgname}: already assigned to {holder}"
                raise ValueError(msg) from None
            self.conn.commit()
        logger.info("Assigned %s to %s", pkgname, tg_uid, extra={"package": pkgname, "packager": tg_uid})

    def drop_assignment(self, pkgname: str, tg_uid: int) -> bool:
        """Remove the assignment of *pkgname* held by *tg_uid* in one statement.

        Returns False when there was nothing to remove.
        """
        with _store_errors(self, f"drop assignment of {pkgname} for {tg_uid}"):
            cursor = self.conn.execute(
                "DELETE FROM assignment WHERE assignee = ? AND pkg = (SELECT id FROM pkg WHERE name = ?)",
                (tg_uid, pkgname),
            )
            self.conn.commit()
        removed = cursor.rowcount > 0
        if not removed:
            logger.warning("No assignment of %s held by %s to drop", pkgname, tg_uid, extra={"package": pkgname, "packager": tg_uid})
        return removed

    def get_working_list(self) -> list[WorkUnit]:
        """Every packager with at least one assignment, and what they hold."""
        with _store_errors(self, "get working list"):
            rows = self.conn.execute(
                "SELECT p.tg_uid, p.alias, pkg.name, a.assigned_at FROM assignment a "
                "JOIN pkg ON pkg.id = a.pkg "
                "JOIN packager p ON p.tg_uid = a.assignee "
                "ORDER BY p.alias, p.tg_uid, a.assigned_at, pkg.name"
            ).fetchall()

        units: dict[int, WorkUnit] = {}
        for row in rows:
            unit = units.get(row["tg_uid"])
            if unit is None:
                unit = WorkUnit(packager={"tg_uid": row["tg_uid"], "alias": row["alias"]}, assignments=[])
                units[row["tg_uid"]] = unit
            unit["assignments"].append(AssignedPackage(pkg=row["name"], assigned_at=ISOTimestamp(row["assigned_at"])))
        return list(units.values())
