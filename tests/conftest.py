"""Shared pytest fixtures for pkgtracker tests."""

from __future__ import annotations

from collections.abc import Callable, Generator, Iterable
from pathlib import Path

import pytest
from click.testing import CliRunner

from pkgtracker.core import Packager, PackageDB
from pkgtracker.errors import NotifyError, StoreError
from pkgtracker.types.core import MarkUnit, WorkUnit
from pkgtracker.workflow import TrackerContext

TOKEN = "s3cret"


class RecordingNotifier:
    """Notifier double: records every delivered text.

    *fail_on* holds 1-based call numbers that raise ``NotifyError`` instead
    (1 = primary notification, 2 = the next send, ...).
    """

    def __init__(self, fail_on: Iterable[int] = ()) -> None:
        self.sent: list[str] = []
        self.calls = 0
        self.fail_on = set(fail_on)

    async def send_message(self, text: str) -> None:
        self.calls += 1
        if self.calls in self.fail_on:
            raise NotifyError(f"telegram unreachable (call {self.calls})")
        self.sent.append(text)


class FlakyStore:
    """StatusStore double that delegates to a real PackageDB.

    Methods named in *fail* raise ``StoreError`` without touching the DB.
    Every call is recorded in ``calls``.
    """

    def __init__(self, db: PackageDB, fail: Iterable[str] = ()) -> None:
        self.db = db
        self.fail = set(fail)
        self.calls: list[tuple[str, tuple[object, ...]]] = []

    def _hit(self, name: str, *args: object) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise StoreError(f"disk I/O error during {name}")

    def find_packager(self, pkgname: str) -> Packager:
        self._hit("find_packager", pkgname)
        return self.db.find_packager(pkgname)

    def drop_assignment(self, pkgname: str, tg_uid: int) -> bool:
        self._hit("drop_assignment", pkgname, tg_uid)
        return self.db.drop_assignment(pkgname, tg_uid)

    def remove_marks(self, pkgname: str, match: Iterable[str] | None = None) -> list[str]:
        match = None if match is None else tuple(match)
        self._hit("remove_marks", pkgname, match)
        return self.db.remove_marks(pkgname, match)

    def get_working_list(self) -> list[WorkUnit]:
        self._hit("get_working_list")
        return self.db.get_working_list()

    def get_mark_list(self) -> list[MarkUnit]:
        self._hit("get_mark_list")
        return self.db.get_mark_list()


@pytest.fixture
def db(tmp_path: Path) -> Generator[PackageDB, None, None]:
    """Fresh PackageDB for each test."""
    d = PackageDB(tmp_path / "pkgtracker.db")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def seeded_db(db: PackageDB) -> PackageDB:
    """PackageDB with the canonical completion scenario.

    - packager 42 "alice" holds "foo", packager 7 "bob" holds "bar"
    - "foo" is marked stuck and ready, plus "needs_review" (outside the attention vocabulary)
    - "bar" is marked outdated
    """
    db.add_packager(42, "alice")
    db.add_packager(7, "bob")
    db.assign_package("foo", 42)
    db.assign_package("bar", 7)
    db.add_mark("foo", "stuck", marked_by=42, msg_id=100)
    db.add_mark("foo", "ready", marked_by=7, msg_id=101, comment="looks good")
    db.add_mark("foo", "needs_review", marked_by=7, msg_id=102)
    db.add_mark("bar", "outdated", msg_id=103)
    return db


@pytest.fixture
def token() -> str:
    """The secret every test context is configured with."""
    return TOKEN


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_store(seeded_db: PackageDB) -> Callable[..., FlakyStore]:
    """Factory: ``make_store("drop_assignment")`` fails that method."""

    def _make(*fail: str) -> FlakyStore:
        return FlakyStore(seeded_db, fail)

    return _make


@pytest.fixture
def make_ctx(make_store: Callable[..., FlakyStore]) -> Callable[..., TrackerContext]:
    """Factory for a TrackerContext over the seeded DB.

    ``make_ctx(fail_store={"remove_marks"}, fail_notify={2})``
    """

    def _make(*, fail_store: Iterable[str] = (), fail_notify: Iterable[int] = ()) -> TrackerContext:
        return TrackerContext(store=make_store(*fail_store), notifier=RecordingNotifier(fail_notify), token=TOKEN)

    return _make


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
