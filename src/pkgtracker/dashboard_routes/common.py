"""Shared helpers for dashboard route modules."""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse

from pkgtracker.workflow import Outcome

logger = logging.getLogger(__name__)


def _outcome_response(outcome: Outcome) -> JSONResponse:
    """Render an Outcome as its JSON envelope with the matching status code."""
    if not outcome.ok:
        logger.warning("API error [%s] %s: %s", outcome.http_status, outcome.msg, outcome.detail)
    return JSONResponse(outcome.to_dict(), status_code=outcome.http_status)


def _error_response(msg: str, error: BaseException | str, status_code: int = 500) -> JSONResponse:
    """Return a failure envelope and log the error."""
    return _outcome_response(Outcome.failure(msg, error, http_status=status_code))
