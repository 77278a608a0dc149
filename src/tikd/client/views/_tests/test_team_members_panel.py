from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from tikd.client.config import ClientConfig
from tikd.client.control.coordinator import CommandPhase
from tikd.client.control.errors import INVALID_RESPONSE_MESSAGE, RemoteCommandError, ValidationError
from tikd.client.control.executor import RemoteCommandExecutor
from tikd.client.control.notifications import ToastFeed
from tikd.client.control.query_cache import QueryCache
from tikd.client.views.team_members import TeamMembersPanel

ORG = "64b000000000000000000001"


def _member(member_id: str, email: str, role: str = "scanner", status: str = "active") -> Dict[str, Any]:
    return {
        "_id": member_id,
        "organizationId": ORG,
        "email": email,
        "name": email.split("@")[0],
        "role": role,
        "status": status,
        "temporaryAccess": False,
        "inviteToken": "kept-verbatim",
    }


class FakeTeamApi:
    """Serves the team routes through MockTransport; ``fail`` forces errors."""

    def __init__(self, members: List[Dict[str, Any]]) -> None:
        self.members = [dict(m) for m in members]
        self.requests: List[httpx.Request] = []
        self.fail: Dict[str, tuple[int, str]] = {}
        self.reply: Dict[str, Any] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        if method in self.fail:
            status, text = self.fail[method]
            return httpx.Response(status, text=text)
        if method in self.reply:
            return httpx.Response(200, json=self.reply[method])
        parts = request.url.path.strip("/").split("/")
        if method == "GET":
            return httpx.Response(200, json=self.members)
        if method == "POST":
            body = json.loads(request.content)
            doc = {
                "_id": f"64b0000000000000000000{len(self.members):02x}",
                "organizationId": ORG,
                "email": body["email"],
                "role": body.get("role", "member"),
                "status": "invited",
                "temporaryAccess": body["temporaryAccess"],
            }
            self.members.append(doc)
            return httpx.Response(201, json={"member": doc})
        member_id = parts[-1]
        idx = next(i for i, m in enumerate(self.members) if m["_id"] == member_id)
        if method == "DELETE":
            self.members.pop(idx)
            return httpx.Response(200, json={"ok": True})
        body = json.loads(request.content)
        doc = dict(self.members[idx])
        if body.get("action") == "resend":
            doc["status"] = "invited"
        for key in ("role", "roleId", "status", "temporaryAccess", "expiresAt"):
            if key in body:
                doc[key] = body[key]
        self.members[idx] = doc
        return httpx.Response(200, json=doc)

    def count(self, method: str) -> int:
        return sum(1 for r in self.requests if r.method == method)


def _roster() -> List[Dict[str, Any]]:
    return [
        _member("m1", "ana@tikd.io", role="admin"),
        _member("m2", "bo@tikd.io", role="promoter"),
        _member("m3", "cy@tikd.io", role="scanner", status="invited"),
    ]


def _panel(api: FakeTeamApi):
    executor = RemoteCommandExecutor.from_config(
        ClientConfig(base_url="http://tikd.test"),
        transport=httpx.MockTransport(api),
    )
    cache = QueryCache()
    feed = ToastFeed(duration_ms=0)
    return TeamMembersPanel(ORG, executor, cache=cache, notifier=feed), executor, cache, feed


def test_role_change_is_optimistic_and_invalidates_team_once() -> None:
    api = FakeTeamApi(_roster())

    async def _run() -> None:
        panel, executor, cache, feed = _panel(api)
        signals = []
        cache.subscribe(signals.append)
        async with executor:
            await panel.load()
            ticket = panel.set_role("m2", "admin")
            assert panel.roster.get("m2").role == "admin"
            await ticket.wait()

        assert ticket.succeeded
        member = panel.roster.get("m2")
        assert member.role == "admin"
        assert member.extra == {"inviteToken": "kept-verbatim"}
        assert signals == [(("org-team", ORG),)]
        assert cache.is_stale(("org-team", ORG))
        assert [t.message for t in feed.history("success")] == ["Member updated."]

    asyncio.run(_run())


def test_failed_role_change_restores_member() -> None:
    api = FakeTeamApi(_roster())
    api.fail["PATCH"] = (403, "Forbidden")

    async def _run() -> None:
        panel, executor, cache, feed = _panel(api)
        async with executor:
            await panel.load()
            before = panel.roster
            ticket = panel.set_role("m2", "admin")
            await ticket.wait()

        assert panel.roster == before
        assert cache.invalidation_count == 0
        assert [t.message for t in feed.history("error")] == ["Forbidden"]

    asyncio.run(_run())


def test_failed_remove_puts_member_back_in_place() -> None:
    api = FakeTeamApi(_roster())
    api.fail["DELETE"] = (500, "")

    async def _run() -> None:
        panel, executor, _cache, feed = _panel(api)
        async with executor:
            await panel.load()
            ticket = panel.remove("m2")
            assert [m.member_id for m in panel.roster.members] == ["m1", "m3"]
            await ticket.wait()

        assert [m.member_id for m in panel.roster.members] == ["m1", "m2", "m3"]
        assert [t.message for t in feed.history("error")] == ["Request failed: 500"]

    asyncio.run(_run())


def test_remove_commits() -> None:
    api = FakeTeamApi(_roster())

    async def _run() -> None:
        panel, executor, _cache, feed = _panel(api)
        async with executor:
            await panel.load()
            await panel.remove("m1").wait()

        assert [m.member_id for m in panel.roster.members] == ["m2", "m3"]
        assert [t.message for t in feed.history("success")] == ["Member removed."]

    asyncio.run(_run())


def test_invite_waits_for_server_then_appends() -> None:
    api = FakeTeamApi(_roster())

    async def _run() -> None:
        panel, executor, _cache, feed = _panel(api)
        async with executor:
            await panel.load()
            ticket = panel.invite(" New@Tikd.io ", role="scanner")
            assert len(panel.roster.members) == 3
            await ticket.wait()

        added = panel.roster.members[-1]
        assert added.email == "new@tikd.io"
        assert added.status == "invited"
        assert [t.message for t in feed.history("success")] == ["Invitation sent to new@tikd.io."]

    asyncio.run(_run())

    body = json.loads(api.requests[-1].content)
    assert body == {
        "email": "new@tikd.io",
        "role": "scanner",
        "temporaryAccess": False,
        "applyTo": {"existing": False, "future": False},
    }


def test_resend_invite_is_not_optimistic() -> None:
    api = FakeTeamApi(_roster())

    async def _run() -> None:
        panel, executor, _cache, feed = _panel(api)
        async with executor:
            await panel.load()
            before = panel.roster
            ticket = panel.resend_invite("m3")
            assert panel.roster is before
            await ticket.wait()

        assert ticket.succeeded
        assert [t.message for t in feed.history("success")] == ["Invitation resent."]

    asyncio.run(_run())


@pytest.mark.parametrize(
    "call",
    [
        lambda p: p.set_role("m2", "overlord"),
        lambda p: p.set_role("missing", "admin"),
        lambda p: p.set_status("m2", "expired"),
        lambda p: p.set_custom_role("m2", "not-an-object-id"),
        lambda p: p.set_temporary_access("m2", True),
        lambda p: p.remove("missing"),
        lambda p: p.invite("not-an-email", role="scanner"),
        lambda p: p.invite("x@tikd.io"),
        lambda p: p.invite("x@tikd.io", role="scanner", temporary_access=True),
    ],
)
def test_invalid_requests_never_reach_the_server(call) -> None:
    api = FakeTeamApi(_roster())

    async def _run() -> None:
        panel, executor, _cache, _feed = _panel(api)
        async with executor:
            await panel.load()
            before = panel.roster
            with pytest.raises(ValidationError):
                call(panel)
            assert panel.roster is before

    asyncio.run(_run())
    assert api.count("GET") == 1
    assert len(api.requests) == 1


def test_custom_role_sets_member_role() -> None:
    api = FakeTeamApi(_roster())
    role_id = "64b0000000000000000000ff"

    async def _run() -> None:
        panel, executor, _cache, _feed = _panel(api)
        async with executor:
            await panel.load()
            ticket = panel.set_custom_role("m3", role_id)
            member = panel.roster.get("m3")
            assert (member.role, member.role_id) == ("member", role_id)
            await ticket.wait()

        assert panel.roster.get("m3").role_id == role_id

    asyncio.run(_run())


def test_unreadable_member_result_rolls_back() -> None:
    api = FakeTeamApi(_roster())
    api.reply["PATCH"] = {"ok": True}

    async def _run() -> None:
        panel, executor, cache, feed = _panel(api)
        async with executor:
            await panel.load()
            before = panel.roster
            ticket = panel.set_role("m1", "scanner")
            await ticket.wait()

        assert ticket.phase is CommandPhase.ROLLED_BACK
        assert isinstance(ticket.error, RemoteCommandError)
        assert ticket.error.message == INVALID_RESPONSE_MESSAGE
        assert panel.roster == before
        assert cache.invalidation_count == 0
        assert [t.message for t in feed.history("error")] == [INVALID_RESPONSE_MESSAGE]

    asyncio.run(_run())


class GatedTeamApi(FakeTeamApi):
    """Holds each mutating request until its method's gate opens."""

    def __init__(self, members: List[Dict[str, Any]]) -> None:
        super().__init__(members)
        self.gates: Dict[str, asyncio.Event] = {}

    async def __call__(self, request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        gate = self.gates.get(request.method)
        if gate is not None:
            await gate.wait()
        return super().__call__(request)


@pytest.mark.parametrize("first", ["PATCH", "DELETE"])
def test_failed_role_change_and_removal_restore_member(first: str) -> None:
    api = GatedTeamApi(_roster())
    api.fail = {"PATCH": (500, "Could not change role"), "DELETE": (500, "Could not remove")}

    async def _run() -> None:
        api.gates = {"PATCH": asyncio.Event(), "DELETE": asyncio.Event()}
        panel, executor, _cache, feed = _panel(api)
        async with executor:
            loaded = await panel.load()
            tickets = {"PATCH": panel.set_role("m2", "admin"), "DELETE": panel.remove("m2")}
            assert panel.roster.get("m2") is None

            api.gates[first].set()
            await tickets[first].wait()
            if first == "PATCH":
                # the pending removal keeps the member hidden
                assert panel.roster.get("m2") is None
            else:
                # the role change is still pending and stays visible
                assert panel.roster.index_of("m2") == 1
                assert panel.roster.get("m2").role == "admin"

            second = "DELETE" if first == "PATCH" else "PATCH"
            api.gates[second].set()
            await tickets[second].wait()

        assert panel.roster == loaded
        assert panel.roster.index_of("m2") == 1
        assert panel.roster.get("m2").role == "promoter"
        assert len(feed.history("error")) == 2

    asyncio.run(_run())
