"""Typed return-value contracts for pkgtracker core and API layers."""

from __future__ import annotations

from pkgtracker.types.api import OutcomeEnvelope, PkgListResponse
from pkgtracker.types.core import (
    AssignedPackage,
    ISOTimestamp,
    MarkRecord,
    MarkUnit,
    PackagerDict,
    TrackerConfig,
    WorkUnit,
)

__all__ = [
    "AssignedPackage",
    "ISOTimestamp",
    "MarkRecord",
    "MarkUnit",
    "OutcomeEnvelope",
    "PackagerDict",
    "PkgListResponse",
    "TrackerConfig",
    "WorkUnit",
]
