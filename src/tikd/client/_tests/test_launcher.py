from __future__ import annotations

import pytest

from tikd.client import launcher


def test_parser_notifications_set() -> None:
    args = launcher.build_parser().parse_args(["notifications", "set", "reminders", "email", "off"])
    assert (args.area, args.action) == ("notifications", "set")
    assert (args.row, args.channel, args.value) == ("reminders", "email", False)


def test_parser_team_invite() -> None:
    args = launcher.build_parser().parse_args(
        ["--base-url", "http://x", "team", "invite", "org1", "a@b.co", "scanner", "--expires-at", "2026-12-31"]
    )
    assert args.base_url == "http://x"
    assert (args.org, args.email, args.role, args.expires_at) == ("org1", "a@b.co", "scanner", "2026-12-31")


@pytest.mark.parametrize(
    "argv",
    [
        ["notifications", "set", "reminders", "pager", "on"],
        ["marketing", "sales", "maybe"],
        ["team", "status", "org1", "m1", "expired"],
    ],
)
def test_parser_rejects_bad_values(argv) -> None:
    with pytest.raises(SystemExit):
        launcher.build_parser().parse_args(argv)


def test_main_reports_validation_errors(monkeypatch, capsys) -> None:
    async def _invalid(args, config, feed):
        raise launcher.ValidationError("Enter a valid email address.", field="email")

    monkeypatch.setattr(launcher, "_run", _invalid)
    code = launcher.main(["team", "invite", "org1", "bad", "scanner"])
    assert code == 2
    assert "Enter a valid email address." in capsys.readouterr().err


def test_main_prints_toasts(monkeypatch, capsys) -> None:
    async def _ok(args, config, feed):
        feed.success("Notification preference updated.")
        return 0

    monkeypatch.setattr(launcher, "_run", _ok)
    assert launcher.main(["marketing", "weekly", "on"]) == 0
    assert "[Success] Notification preference updated." in capsys.readouterr().out


def test_main_uses_configured_toast_duration(monkeypatch) -> None:
    seen = []

    async def _capture(args, config, feed):
        seen.append(feed.show("info", "loaded"))
        seen.append(feed.history()[0].duration_ms)
        return 0

    monkeypatch.delenv("TIKD_SYNC_DEBUG", raising=False)
    monkeypatch.setenv("TIKD_TOAST_DURATION_MS", "1500")
    monkeypatch.setattr(launcher, "_run", _capture)
    assert launcher.main(["notifications", "show"]) == 0
    assert seen == ["toast-1", 1500]
