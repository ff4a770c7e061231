"""Package-completion workflow.

Runs when a packager reports a package as finished (built, or declared
unbuildable/unneeded)::

    authorize -> validate status -> resolve packager -> primary notification
      -> drop assignment [-> failure notification] -> clean up marks -> done

Notification delivery is the hard failure boundary: once the primary
notification is out, storage errors are reported to the same chat and
absorbed, while any failed send turns the outcome into a server error.
Nothing is retried.
"""

from __future__ import annotations

import asyncio
import html
import logging
import secrets
from dataclasses import dataclass
from enum import StrEnum
from time import perf_counter
from typing import TYPE_CHECKING

from pkgtracker.core import ATTENTION_MARKS, PackageStatus
from pkgtracker.errors import (
    AuthorizationError,
    NotFoundError,
    NotifyError,
    StoreError,
    TrackerError,
    ValidationError,
)
from pkgtracker.notifier import mention_link

if TYPE_CHECKING:
    from pkgtracker.core import Packager
    from pkgtracker.db_base import StatusStore
    from pkgtracker.notifier import Notifier
    from pkgtracker.types.api import OutcomeEnvelope

logger = logging.getLogger(__name__)

AUTO_MERGE_TAG = "<code>(auto-merge)</code>"
AUTO_UNMARK_TAG = "<code>(auto-unmark)</code>"


class ReqStatus(StrEnum):
    OK = "Ok"
    FAIL = "Fail"


@dataclass(frozen=True)
class Outcome:
    """Aggregate result handed back to the caller.

    ``detail`` always carries the innermost error text on failure.
    """

    status: ReqStatus
    msg: str
    detail: str
    http_status: int = 200

    @property
    def ok(self) -> bool:
        return self.status is ReqStatus.OK

    @classmethod
    def success(cls, detail: str) -> Outcome:
        return cls(ReqStatus.OK, "Request success", detail, 200)

    @classmethod
    def failure(cls, msg: str, error: BaseException | str, *, http_status: int | None = None) -> Outcome:
        if http_status is None:
            http_status = error.http_status if isinstance(error, TrackerError) else 500
        return cls(ReqStatus.FAIL, msg, str(error), http_status)

    def to_dict(self) -> OutcomeEnvelope:
        return {"status": self.status.value, "msg": self.msg, "detail": self.detail}  # type: ignore[typeddict-item]


@dataclass
class TrackerContext:
    """Collaborators for one deployment, passed to every workflow call."""

    store: StatusStore
    notifier: Notifier
    token: str


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def check_token(ctx: TrackerContext, token: str | None) -> None:
    """Raise ``AuthorizationError`` unless *token* equals the configured secret.

    An empty configured secret rejects every request.
    """
    if not ctx.token or token is None:
        raise AuthorizationError("invalid token")
    if not secrets.compare_digest(token.encode(), ctx.token.encode()):
        raise AuthorizationError("invalid token")


def parse_status(raw: str) -> PackageStatus:
    try:
        return PackageStatus(raw)
    except ValueError:
        allowed = " or ".join(f"'{s.value}'" for s in PackageStatus)
        raise ValidationError(f"Required {allowed}, get {raw}") from None


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------


def completed_message(pkgname: str, packager: Packager) -> str:
    return f"{AUTO_MERGE_TAG} ping {mention_link(packager.alias, packager.tg_uid)}: {html.escape(pkgname)} has been built"


def unassign_failed_message(error: BaseException) -> str:
    return f"{AUTO_MERGE_TAG} failed: {html.escape(str(error))}"


def unmarked_message(pkgname: str, removed: list[str]) -> str:
    return f"{AUTO_UNMARK_TAG} {html.escape(pkgname)} has been built, no longer flagged as: {', '.join(removed)}"


def unmark_failed_message(pkgname: str, error: BaseException) -> str:
    return f"fail to delete marks for {html.escape(pkgname)}: \n<code>{html.escape(str(error))}</code>"


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


async def _cleanup_marks(ctx: TrackerContext, pkgname: str) -> list[str]:
    """Remove the attention marks from *pkgname* and report it to the chat.

    A store failure is reported instead of raised. A failed send raises
    ``NotifyError``.
    """
    try:
        removed = ctx.store.remove_marks(pkgname, ATTENTION_MARKS)
    except StoreError as e:
        logger.warning("Failed to remove marks for %s: %s", pkgname, e, extra={"package": pkgname, "step": "cleanup", "error": str(e)})
        await ctx.notifier.send_message(unmark_failed_message(pkgname, e))
        return []
    await ctx.notifier.send_message(unmarked_message(pkgname, removed))
    return removed


async def complete_package(ctx: TrackerContext, pkgname: str, status: str, token: str | None) -> Outcome:
    """Mark *pkgname* as finished with *status* on behalf of the caller holding *token*."""
    started = perf_counter()
    log_extra: dict[str, object] = {"package": pkgname, "step": "validate"}

    try:
        check_token(ctx, token)
    except AuthorizationError as e:
        logger.warning("Rejected completion of %s: %s", pkgname, e, extra=log_extra)
        return Outcome.failure("forbidden", e)

    try:
        pkg_status = parse_status(status)
    except ValidationError as e:
        logger.warning("Rejected completion of %s: %s", pkgname, e, extra=log_extra)
        return Outcome.failure("bad request", e)

    try:
        packager = ctx.store.find_packager(pkgname)
    except (NotFoundError, StoreError) as e:
        logger.error("Cannot resolve packager for %s: %s", pkgname, e, extra={**log_extra, "step": "resolve", "error": str(e)})
        return Outcome.failure("fail to fetch packager", e)
    log_extra["packager"] = packager.tg_uid

    try:
        await ctx.notifier.send_message(completed_message(pkgname, packager))
    except NotifyError as e:
        logger.error("Primary notification for %s failed: %s", pkgname, e, extra={**log_extra, "step": "notify", "error": str(e)})
        return Outcome.failure("fail to send telegram message", e)

    try:
        ctx.store.drop_assignment(pkgname, packager.tg_uid)
    except StoreError as e:
        logger.warning("Dropping assignment of %s failed: %s", pkgname, e, extra={**log_extra, "step": "commit", "error": str(e)})
        try:
            await ctx.notifier.send_message(unassign_failed_message(e))
        except NotifyError as notify_err:
            logger.error(
                "Failure notification for %s failed: %s", pkgname, notify_err, extra={**log_extra, "step": "notify", "error": str(notify_err)}
            )
            return Outcome.failure("fail to send telegram message", notify_err)

    cleanup = asyncio.create_task(_cleanup_marks(ctx, pkgname), name=f"cleanup-marks:{pkgname}")
    try:
        removed = await cleanup
    except NotifyError as e:
        logger.error("Unmark notification for %s failed: %s", pkgname, e, extra={**log_extra, "step": "cleanup", "error": str(e)})
        return Outcome.failure("fail to send telegram message", e)

    logger.info(
        "Completed %s as %s (removed marks: %s)",
        pkgname,
        pkg_status.value,
        ", ".join(removed) or "none",
        extra={**log_extra, "step": "done", "duration_ms": round((perf_counter() - started) * 1000, 1)},
    )
    return Outcome.success("package deleted")
