"""TypedDicts for dashboard route API responses."""

from __future__ import annotations

from typing import Literal, TypedDict

from pkgtracker.types.core import MarkUnit, WorkUnit

# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.


class OutcomeEnvelope(TypedDict):
    """JSON body returned for every workflow outcome and every error."""

    status: Literal["Ok", "Fail"]
    msg: str
    detail: str


# camelCase keys are part of the wire format consumed by the web frontend.
PkgListResponse = TypedDict(
    "PkgListResponse",
    {
        "workList": list[WorkUnit],
        "markList": list[MarkUnit],
    },
)
