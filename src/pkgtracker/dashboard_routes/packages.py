"""Package listing and completion route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from pkgtracker.dashboard_routes.common import _error_response, _outcome_response
from pkgtracker.errors import StoreError
from pkgtracker.types.api import PkgListResponse
from pkgtracker.workflow import TrackerContext, complete_package

if TYPE_CHECKING:
    from fastapi import APIRouter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def create_router() -> APIRouter:
    """Build the APIRouter for package endpoints.

    NOTE: All handlers are intentionally async despite doing synchronous
    SQLite I/O. This serializes DB access on the event loop thread,
    avoiding concurrent multi-thread access to the shared DB connection.
    """
    from fastapi import APIRouter

    from pkgtracker.dashboard import _get_context

    router = APIRouter()

    @router.get("/pkg")
    async def api_pkg(ctx: TrackerContext = Depends(_get_context)) -> JSONResponse:
        """Current assignments and marks, for the web frontend."""
        try:
            work_list = ctx.store.get_working_list()
        except StoreError as e:
            return _error_response("fail to get working list", e)
        try:
            mark_list = ctx.store.get_mark_list()
        except StoreError as e:
            return _error_response("fail to get mark list", e)
        body: PkgListResponse = {"workList": work_list, "markList": mark_list}
        return JSONResponse(body)

    @router.get("/delete/{pkgname}/{status}")
    async def api_delete(pkgname: str, status: str, request: Request, ctx: TrackerContext = Depends(_get_context)) -> JSONResponse:
        """Report *pkgname* as finished; see ``pkgtracker.workflow``.

        ``token`` is read by hand so a missing value is a 403, not a 422.
        """
        token = request.query_params.get("token")
        try:
            outcome = await complete_package(ctx, pkgname, status, token)
        except Exception as exc:
            logger.exception("BUG: Unexpected error completing %s", pkgname)
            return _error_response("Execution fail", exc)
        return _outcome_response(outcome)

    return router
