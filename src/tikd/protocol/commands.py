"""Command dataclasses for the dashboard mutation endpoints.

A :class:`Command` wraps one user-intended change.  Its ``payload`` is one of
the tagged variants below; ``kind`` names the variant and is what the executor
and the coordinator switch on.  Payloads are frozen and know how to render
their own JSON request body.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional, Tuple, Union

from .entities import ProfileSettings

# Command kinds
NOTIFICATION_MATRIX_KIND = "notifications.matrix"
NOTIFICATION_TOGGLE_KIND = "notifications.toggle"
MEMBER_UPDATE_KIND = "team.member.update"
MEMBER_RESEND_KIND = "team.member.resend"
MEMBER_INVITE_KIND = "team.member.invite"
MEMBER_REMOVE_KIND = "team.member.remove"
PROFILE_UPDATE_KIND = "settings.profile"
PASSWORD_CHANGE_KIND = "settings.password"

InvalidationKey = Tuple[Hashable, ...]
FieldKey = Tuple[Hashable, ...]


def notifications_query_key() -> InvalidationKey:
    return ("settings", "notifications")


def profile_query_key() -> InvalidationKey:
    return ("settings", "profile")


def org_team_query_key(organization_id: str) -> InvalidationKey:
    return ("org-team", organization_id)


def _strip_none(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


@dataclass(frozen=True)
class MatrixUpdate:
    row: str
    channel: str
    value: bool

    kind = NOTIFICATION_MATRIX_KIND

    def to_body(self) -> Dict[str, Any]:
        return {"type": "matrix", "row": self.row, "channel": self.channel, "value": self.value}


@dataclass(frozen=True)
class ToggleUpdate:
    key: str
    value: bool

    kind = NOTIFICATION_TOGGLE_KIND

    def to_body(self) -> Dict[str, Any]:
        return {"type": "toggle", "key": self.key, "value": self.value}


@dataclass(frozen=True)
class MemberUpdate:
    """Partial update of one team member (role, status or access window)."""

    organization_id: str
    member_id: str
    role: Optional[str] = None
    role_id: Optional[str] = None
    status: Optional[str] = None
    temporary_access: Optional[bool] = None
    expires_at: Optional[str] = None

    kind = MEMBER_UPDATE_KIND

    def to_body(self) -> Dict[str, Any]:
        return _strip_none(
            {
                "role": self.role,
                "roleId": self.role_id,
                "status": self.status,
                "temporaryAccess": self.temporary_access,
                "expiresAt": self.expires_at,
            }
        )


@dataclass(frozen=True)
class MemberResend:
    organization_id: str
    member_id: str

    kind = MEMBER_RESEND_KIND

    def to_body(self) -> Dict[str, Any]:
        return {"action": "resend"}


@dataclass(frozen=True)
class MemberInvite:
    organization_id: str
    email: str
    role: Optional[str] = None
    role_id: Optional[str] = None
    temporary_access: bool = False
    expires_at: Optional[str] = None
    apply_to_existing: bool = False
    apply_to_future: bool = False

    kind = MEMBER_INVITE_KIND

    def to_body(self) -> Dict[str, Any]:
        body = _strip_none(
            {
                "email": self.email.strip().lower(),
                "role": self.role,
                "roleId": self.role_id,
                "expiresAt": self.expires_at if self.temporary_access else None,
            }
        )
        body["temporaryAccess"] = bool(self.temporary_access)
        body["applyTo"] = {"existing": bool(self.apply_to_existing), "future": bool(self.apply_to_future)}
        return body


@dataclass(frozen=True)
class MemberRemove:
    organization_id: str
    member_id: str

    kind = MEMBER_REMOVE_KIND

    def to_body(self) -> Optional[Dict[str, Any]]:
        return None


@dataclass(frozen=True)
class ProfileUpdate:
    profile: ProfileSettings

    kind = PROFILE_UPDATE_KIND

    def to_body(self) -> Dict[str, Any]:
        body = self.profile.to_dict()
        body["email"] = str(body.get("email", "")).strip().lower()
        return body


@dataclass(frozen=True)
class PasswordChange:
    current: str
    new: str
    confirm: str = ""

    kind = PASSWORD_CHANGE_KIND

    def __repr__(self) -> str:  # keep secrets out of logs
        return "PasswordChange(current=***, new=***)"

    def to_body(self) -> Dict[str, Any]:
        return {"current": self.current, "next": self.new}


CommandPayload = Union[
    MatrixUpdate,
    ToggleUpdate,
    MemberUpdate,
    MemberResend,
    MemberInvite,
    MemberRemove,
    ProfileUpdate,
    PasswordChange,
]


@dataclass(frozen=True)
class Command:
    """One user-initiated mutation; immutable once created."""

    command_id: str
    kind: str
    payload: CommandPayload
    issued_at: float

    @classmethod
    def create(cls, command_id: str, payload: CommandPayload, *, issued_at: float) -> "Command":
        return cls(command_id=command_id, kind=payload.kind, payload=payload, issued_at=float(issued_at))

    def to_body(self) -> Optional[Dict[str, Any]]:
        return self.payload.to_body()


__all__ = [
    "MEMBER_INVITE_KIND",
    "MEMBER_REMOVE_KIND",
    "MEMBER_RESEND_KIND",
    "MEMBER_UPDATE_KIND",
    "NOTIFICATION_MATRIX_KIND",
    "NOTIFICATION_TOGGLE_KIND",
    "PASSWORD_CHANGE_KIND",
    "PROFILE_UPDATE_KIND",
    "Command",
    "CommandPayload",
    "FieldKey",
    "InvalidationKey",
    "MatrixUpdate",
    "MemberInvite",
    "MemberRemove",
    "MemberResend",
    "MemberUpdate",
    "PasswordChange",
    "ProfileUpdate",
    "ToggleUpdate",
    "notifications_query_key",
    "org_team_query_key",
    "profile_query_key",
]
