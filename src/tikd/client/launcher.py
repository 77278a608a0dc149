"""
Command-line entry point for the dashboard sync client.

Drives the same panels the dashboard screens use, against a running Tikd
deployment, which makes it handy for poking at the settings and team routes.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Callable, Optional, Sequence

from tikd.client.config import ClientConfig
from tikd.client.control.coordinator import CommandTicket
from tikd.client.control.errors import CommandError, ValidationError
from tikd.client.control.executor import RemoteCommandExecutor
from tikd.client.control.notifications import ToastFeed
from tikd.client.control.query_cache import QueryCache
from tikd.client.views.notification_settings import NotificationSettingsPanel
from tikd.client.views.team_members import TeamMembersPanel
from tikd.protocol.entities import (
    MARKETING_KEYS,
    MEMBER_ROLES,
    NOTIFICATION_CHANNELS,
    NOTIFICATION_ROWS,
    REQUESTABLE_STATUSES,
)

logger = logging.getLogger(__name__)

_ON_OFF = {"on": True, "off": False, "true": True, "false": False, "1": True, "0": False}


def _on_off(value: str) -> bool:
    key = value.strip().lower()
    if key not in _ON_OFF:
        raise argparse.ArgumentTypeError(f"expected on/off, got {value!r}")
    return _ON_OFF[key]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tikd-sync", description="Tikd dashboard sync client")
    parser.add_argument("--base-url", default=None, help="Dashboard base URL (default: $TIKD_BASE_URL)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="area", required=True)

    notif = sub.add_parser("notifications", help="Notification channel matrix")
    notif_sub = notif.add_subparsers(dest="action", required=True)
    notif_sub.add_parser("show", help="Print current notification settings")
    notif_set = notif_sub.add_parser("set", help="Set one matrix cell")
    notif_set.add_argument("row", choices=NOTIFICATION_ROWS)
    notif_set.add_argument("channel", choices=NOTIFICATION_CHANNELS)
    notif_set.add_argument("value", type=_on_off)

    marketing = sub.add_parser("marketing", help="Marketing email toggles")
    marketing.add_argument("key", choices=MARKETING_KEYS)
    marketing.add_argument("value", type=_on_off)

    team = sub.add_parser("team", help="Organization team members")
    team_sub = team.add_subparsers(dest="action", required=True)
    team_list = team_sub.add_parser("list", help="List team members")
    team_list.add_argument("org")
    team_role = team_sub.add_parser("role", help="Change a member's role")
    team_role.add_argument("org")
    team_role.add_argument("member")
    team_role.add_argument("role", choices=MEMBER_ROLES)
    team_status = team_sub.add_parser("status", help="Change a member's status")
    team_status.add_argument("org")
    team_status.add_argument("member")
    team_status.add_argument("status", choices=REQUESTABLE_STATUSES)
    team_remove = team_sub.add_parser("remove", help="Remove a member")
    team_remove.add_argument("org")
    team_remove.add_argument("member")
    team_invite = team_sub.add_parser("invite", help="Invite a member by email")
    team_invite.add_argument("org")
    team_invite.add_argument("email")
    team_invite.add_argument("role", choices=MEMBER_ROLES)
    team_invite.add_argument("--expires-at", default=None, help="ISO date; grants temporary access")

    return parser


async def _settle(ticket: CommandTicket) -> bool:
    await ticket.wait()
    return ticket.succeeded


async def _run(args: argparse.Namespace, config: ClientConfig, feed: ToastFeed) -> int:
    cache = QueryCache()
    async with RemoteCommandExecutor.from_config(config) as executor:
        if args.area in ("notifications", "marketing"):
            panel = NotificationSettingsPanel(executor, cache=cache, notifier=feed)
            await panel.load()
            if args.area == "notifications" and args.action == "show":
                print(json.dumps(panel.settings.to_dict(), indent=2))
                return 0
            if args.area == "notifications":
                ticket = panel.set_channel(args.row, args.channel, args.value)
            else:
                ticket = panel.set_marketing(args.key, args.value)
            ok = await _settle(ticket)
            print(json.dumps(panel.settings.to_dict(), indent=2))
            return 0 if ok else 1

        team = TeamMembersPanel(args.org, executor, cache=cache, notifier=feed)
        await team.load()
        if args.action == "list":
            for member in team.roster.members:
                print(f"{member.member_id}\t{member.role}\t{member.status}\t{member.display_name}")
            return 0

        actions: dict[str, Callable[[], CommandTicket]] = {
            "role": lambda: team.set_role(args.member, args.role),
            "status": lambda: team.set_status(args.member, args.status),
            "remove": lambda: team.remove(args.member),
            "invite": lambda: team.invite(
                args.email,
                role=args.role,
                temporary_access=args.expires_at is not None,
                expires_at=args.expires_at,
            ),
        }
        ok = await _settle(actions[args.action]())
        return 0 if ok else 1


def _report(feed: ToastFeed) -> None:
    for toast in feed.history():
        stream = sys.stderr if toast.kind == "error" else sys.stdout
        print(f"[{toast.title}] {toast.message}", file=stream)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""

    parser = build_parser()
    args = parser.parse_args(argv)
    config = ClientConfig.from_env(base_url=args.base_url)
    if args.debug:
        config.debug = True
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.WARNING,
        format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("tikd-sync against %s", config.base_url)

    feed = ToastFeed(duration_ms=config.toast_duration_ms)
    try:
        code = asyncio.run(_run(args, config, feed))
    except ValidationError as exc:
        print(f"invalid input: {exc.message}", file=sys.stderr)
        return 2
    except CommandError as exc:
        print(f"request failed: {exc.message}", file=sys.stderr)
        return 1
    _report(feed)
    return code


if __name__ == "__main__":
    sys.exit(main())
