"""Foundational TypedDicts for dataclass to_dict() returns and listings."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class TrackerConfig(TypedDict, total=False):
    """Shape of .pkgtracker/config.json."""

    token: str
    bot_token: str
    chat_id: str
    port: int
    api_base: str
    version: int


class PackagerDict(TypedDict):
    tg_uid: int
    alias: str


class AssignedPackage(TypedDict):
    pkg: str
    assigned_at: ISOTimestamp


class WorkUnit(TypedDict):
    """One packager and everything currently assigned to them."""

    packager: PackagerDict
    assignments: list[AssignedPackage]


class MarkRecord(TypedDict):
    name: str
    marked_by: int | None
    marked_at: ISOTimestamp
    msg_id: int
    comment: str | None


class MarkUnit(TypedDict):
    """One package and the marks attached to it."""

    pkg: str
    marks: list[MarkRecord]
