from __future__ import annotations

import pytest

from tikd.protocol.entities import (
    NOTIFICATION_ROWS,
    NotificationSettings,
    ProfileSettings,
    TeamMember,
    TeamRoster,
)


def test_notification_defaults_fill_gaps() -> None:
    settings = NotificationSettings.from_dict(
        {"channels": {"reminders": {"sms": True, "email": "yes"}}, "marketing": {"sales": True}}
    )
    assert set(settings.channels) == set(NOTIFICATION_ROWS)
    assert settings.channels["reminders"] == {"call": False, "email": True, "sms": True}
    assert settings.marketing == {"sales": True, "special": False, "weekly": False, "outlet": True}
    assert NotificationSettings.from_dict(None) == NotificationSettings()


def test_notification_settings_reject_non_mappings() -> None:
    with pytest.raises(ValueError):
        NotificationSettings.from_dict({"channels": ["email"]})


def test_with_channel_returns_fresh_copy() -> None:
    original = NotificationSettings()
    updated = original.with_channel("storage", "call", True)
    assert updated.channel("storage", "call") is True
    assert original.channel("storage", "call") is False
    assert updated.channels["reminders"] is not original.channels["reminders"]

    toggled = original.with_marketing("outlet", False)
    assert toggled.marketing["outlet"] is False
    assert original.marketing["outlet"] is True


def test_team_member_keeps_unmodeled_keys() -> None:
    doc = {
        "_id": "m1",
        "organizationId": "org",
        "email": "ana@tikd.io",
        "role": "scanner",
        "status": "active",
        "temporaryAccess": True,
        "expiresAt": "2026-12-31",
        "applyTo": {"existing": True, "future": False},
    }
    member = TeamMember.from_dict(doc)
    assert member.member_id == "m1"
    assert member.temporary_access is True
    assert member.extra == {"applyTo": {"existing": True, "future": False}}
    assert member.display_name == "ana@tikd.io"
    assert member.to_dict() == {**doc, "name": ""}


@pytest.mark.parametrize("missing", ["_id", "email", "role"])
def test_team_member_requires_identity_fields(missing: str) -> None:
    doc = {"_id": "m1", "email": "a@b.co", "role": "admin"}
    doc.pop(missing)
    with pytest.raises(ValueError):
        TeamMember.from_dict(doc)


def _roster() -> TeamRoster:
    return TeamRoster.from_list(
        "org",
        [
            {"_id": "m1", "email": "a@tikd.io", "role": "admin"},
            {"_id": "m2", "email": "B@tikd.io", "role": "scanner", "temporaryAccess": True},
            {"_id": "m3", "email": "c@tikd.io", "role": "promoter"},
        ],
    )


def test_roster_put_replaces_or_inserts() -> None:
    roster = _roster()
    removed = roster.without("m2")
    assert [m.member_id for m in removed.members] == ["m1", "m3"]

    restored = removed.put(roster.get("m2"), index=1)
    assert restored == roster

    appended = roster.put(TeamMember(member_id="m4", email="d@tikd.io", role="member"))
    assert appended.members[-1].member_id == "m4"

    replaced = roster.put(TeamMember(member_id="m1", email="a@tikd.io", role="scanner"))
    assert replaced.index_of("m1") == 0
    assert replaced.get("m1").role == "scanner"
    assert roster.get("m1").role == "admin"


def test_roster_queries() -> None:
    roster = _roster()
    assert roster.find_email(" b@TIKD.io ").member_id == "m2"
    assert roster.find_email("z@tikd.io") is None
    assert [m.member_id for m in roster.temporary()] == ["m2"]
    assert [m.member_id for m in roster.active()] == ["m1", "m3"]
    assert roster.index_of("nobody") == -1
    assert len(roster.to_list()) == 3


def test_roster_requires_array() -> None:
    with pytest.raises(ValueError):
        TeamRoster.from_list("org", {"_id": "m1"})


def test_profile_round_trip_defaults() -> None:
    profile = ProfileSettings.from_dict({"firstName": "Ana", "email": "ana@tikd.io", "zip": None})
    assert profile.first_name == "Ana"
    assert profile.zip == ""
    assert profile.to_dict()["defaultAddress"] is False
