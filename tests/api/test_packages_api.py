"""Tests for the /pkg listing and /delete completion endpoints."""

from __future__ import annotations

from httpx import AsyncClient

import pkgtracker.dashboard as dash_module
from pkgtracker.core import PackageDB
from pkgtracker.workflow import TrackerContext


class TestPkgList:
    async def test_shape(self, client: AsyncClient) -> None:
        resp = await client.get("/pkg")
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"workList", "markList"}

        by_alias = {u["packager"]["alias"]: u for u in data["workList"]}
        assert by_alias["alice"]["packager"]["tg_uid"] == 42
        assert [a["pkg"] for a in by_alias["alice"]["assignments"]] == ["foo"]

        marks = {u["pkg"]: sorted(m["name"] for m in u["marks"]) for u in data["markList"]}
        assert marks == {"bar": ["outdated"], "foo": ["needs_review", "ready", "stuck"]}

    async def test_working_list_failure(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        api_ctx.store.fail.add("get_working_list")  # type: ignore[attr-defined]
        resp = await client.get("/pkg")
        assert resp.status_code == 500
        assert resp.json() == {
            "status": "Fail",
            "msg": "fail to get working list",
            "detail": "disk I/O error during get_working_list",
        }

    async def test_mark_list_failure(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        api_ctx.store.fail.add("get_mark_list")  # type: ignore[attr-defined]
        resp = await client.get("/pkg")
        assert resp.status_code == 500
        assert resp.json()["msg"] == "fail to get mark list"


class TestDelete:
    async def test_success(self, client: AsyncClient, api_ctx: TrackerContext, seeded_db: PackageDB) -> None:
        resp = await client.get("/delete/foo/ftbfs", params={"token": "s3cret"})
        assert resp.status_code == 200
        assert resp.json() == {"status": "Ok", "msg": "Request success", "detail": "package deleted"}
        assert len(api_ctx.notifier.sent) == 2  # type: ignore[attr-defined]
        assert seeded_db.get_marks("foo") == ["needs_review"]

    async def test_bad_status(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        resp = await client.get("/delete/foo/bogus", params={"token": "s3cret"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "Fail"
        assert body["msg"] == "bad request"
        assert "bogus" in body["detail"]
        assert api_ctx.notifier.calls == 0  # type: ignore[attr-defined]

    async def test_wrong_token(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        resp = await client.get("/delete/foo/ftbfs", params={"token": "nope"})
        assert resp.status_code == 403
        assert resp.json() == {"status": "Fail", "msg": "forbidden", "detail": "invalid token"}
        assert api_ctx.store.calls == []  # type: ignore[attr-defined]

    async def test_missing_token(self, client: AsyncClient) -> None:
        resp = await client.get("/delete/foo/ftbfs")
        assert resp.status_code == 403

    async def test_unassigned_package(self, client: AsyncClient) -> None:
        resp = await client.get("/delete/ghost/leaf", params={"token": "s3cret"})
        assert resp.status_code == 500
        assert resp.json()["msg"] == "fail to fetch packager"

    async def test_notification_failure(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        api_ctx.notifier.fail_on.add(1)  # type: ignore[attr-defined]
        resp = await client.get("/delete/foo/ftbfs", params={"token": "s3cret"})
        assert resp.status_code == 500
        assert resp.json()["msg"] == "fail to send telegram message"

    async def test_store_failure_after_notification_is_ok(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        api_ctx.store.fail.add("drop_assignment")  # type: ignore[attr-defined]
        resp = await client.get("/delete/foo/ftbfs", params={"token": "s3cret"})
        assert resp.status_code == 200
        assert "disk I/O error during drop_assignment" in api_ctx.notifier.sent[1]  # type: ignore[attr-defined]

    async def test_unexpected_error(self, client: AsyncClient, api_ctx: TrackerContext) -> None:
        def _boom(pkgname: str) -> None:
            raise RuntimeError("boom")

        api_ctx.store.find_packager = _boom  # type: ignore[method-assign]
        resp = await client.get("/delete/foo/ftbfs", params={"token": "s3cret"})
        assert resp.status_code == 500
        assert resp.json() == {"status": "Fail", "msg": "Execution fail", "detail": "boom"}


class TestUninitialized:
    async def test_no_context(self, client: AsyncClient) -> None:
        dash_module._ctx = None
        resp = await client.get("/pkg")
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Tracker not initialized"

    async def test_unknown_route(self, client: AsyncClient) -> None:
        resp = await client.get("/nope")
        assert resp.status_code == 404
