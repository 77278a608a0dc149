"""Entity documents exchanged with the dashboard API.

Each entity is an immutable dataclass with ``from_dict``/``to_dict`` helpers
that mirror the JSON the API routes return.  Mutating helpers (``with_*``,
``put`` and ``without``) always return a fresh instance so a value
captured as a rollback snapshot can never be changed behind the ledger's back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

# Notification preference matrix
NOTIFICATION_ROWS: Tuple[str, ...] = ("apiLimits", "reminders", "storage", "securityAlerts")
NOTIFICATION_CHANNELS: Tuple[str, ...] = ("call", "email", "sms")
MARKETING_KEYS: Tuple[str, ...] = ("sales", "special", "weekly", "outlet")

_DEFAULT_CHANNEL_PREFS: Dict[str, bool] = {"call": False, "email": True, "sms": False}
_DEFAULT_MARKETING: Dict[str, bool] = {
    "sales": False,
    "special": False,
    "weekly": False,
    "outlet": True,
}

# Organization team
MEMBER_ROLES: Tuple[str, ...] = ("admin", "promoter", "scanner", "collaborator", "member")
DISPLAY_ROLES: Tuple[str, ...] = MEMBER_ROLES + ("owner",)
MEMBER_STATUSES: Tuple[str, ...] = ("invited", "active", "revoked", "expired")
REQUESTABLE_STATUSES: Tuple[str, ...] = ("invited", "active", "revoked")

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
OBJECT_ID_RE = re.compile(r"^[a-fA-F\d]{24}$")


def _as_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{field_name} must be a mapping")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _strip_none(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


# ---------------------------------------------------------------------------
# Notification preferences


def default_channels() -> Dict[str, Dict[str, bool]]:
    return {row: dict(_DEFAULT_CHANNEL_PREFS) for row in NOTIFICATION_ROWS}


def default_marketing() -> Dict[str, bool]:
    return dict(_DEFAULT_MARKETING)


@dataclass(frozen=True)
class NotificationSettings:
    """Channel matrix plus marketing toggles for one user."""

    channels: Dict[str, Dict[str, bool]] = field(default_factory=default_channels)
    marketing: Dict[str, bool] = field(default_factory=default_marketing)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "NotificationSettings":
        """Build settings from an API payload, filling gaps from defaults.

        Unknown rows/keys are dropped and non-boolean values fall back to the
        default for that cell, matching what the settings route serves.
        """

        if data is None:
            return cls()
        data = _as_mapping(data, "notification settings")
        raw_channels = data.get("channels") or {}
        raw_marketing = data.get("marketing") or {}
        if not isinstance(raw_channels, Mapping):
            raise ValueError("notification channels must be a mapping")
        if not isinstance(raw_marketing, Mapping):
            raise ValueError("notification marketing must be a mapping")

        channels: Dict[str, Dict[str, bool]] = {}
        for row in NOTIFICATION_ROWS:
            raw_row = raw_channels.get(row)
            if not isinstance(raw_row, Mapping):
                raw_row = {}
            channels[row] = {}
            for channel in NOTIFICATION_CHANNELS:
                value = raw_row.get(channel)
                channels[row][channel] = value if isinstance(value, bool) else _DEFAULT_CHANNEL_PREFS[channel]

        marketing: Dict[str, bool] = {}
        for key in MARKETING_KEYS:
            value = raw_marketing.get(key)
            marketing[key] = value if isinstance(value, bool) else _DEFAULT_MARKETING[key]

        return cls(channels=channels, marketing=marketing)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channels": {row: dict(prefs) for row, prefs in self.channels.items()},
            "marketing": dict(self.marketing),
        }

    def channel(self, row: str, channel: str) -> bool:
        return bool(self.channels[row][channel])

    def with_channel(self, row: str, channel: str, value: bool) -> "NotificationSettings":
        channels = {r: dict(prefs) for r, prefs in self.channels.items()}
        channels.setdefault(row, {})[channel] = bool(value)
        return replace(self, channels=channels, marketing=dict(self.marketing))

    def with_marketing(self, key: str, value: bool) -> "NotificationSettings":
        marketing = dict(self.marketing)
        marketing[key] = bool(value)
        channels = {r: dict(prefs) for r, prefs in self.channels.items()}
        return replace(self, channels=channels, marketing=marketing)


# ---------------------------------------------------------------------------
# Team members

_MEMBER_FIELDS = {
    "_id": "member_id",
    "organizationId": "organization_id",
    "email": "email",
    "name": "name",
    "role": "role",
    "roleId": "role_id",
    "status": "status",
    "userId": "user_id",
    "temporaryAccess": "temporary_access",
    "expiresAt": "expires_at",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


@dataclass(frozen=True)
class TeamMember:
    """One row of an organization's team listing.

    Fields the client does not model are kept verbatim in ``extra`` so that
    ``to_dict`` returns exactly what the server sent.
    """

    member_id: str
    email: str
    role: str
    status: str = "invited"
    organization_id: Optional[str] = None
    name: str = ""
    role_id: Optional[str] = None
    user_id: Optional[str] = None
    temporary_access: bool = False
    expires_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TeamMember":
        data = _as_mapping(data, "team member")
        member_id = data.get("_id", data.get("id"))
        if member_id is None:
            raise ValueError("team member requires '_id'")
        if "email" not in data:
            raise ValueError("team member requires 'email'")
        if "role" not in data:
            raise ValueError("team member requires 'role'")
        extra = {key: value for key, value in data.items() if key not in _MEMBER_FIELDS and key != "id"}
        return cls(
            member_id=str(member_id),
            email=str(data["email"]),
            role=str(data["role"]),
            status=str(data.get("status") or "invited"),
            organization_id=_optional_str(data.get("organizationId")),
            name=str(data.get("name") or ""),
            role_id=_optional_str(data.get("roleId")),
            user_id=_optional_str(data.get("userId")),
            temporary_access=bool(data.get("temporaryAccess", False)),
            expires_at=_optional_str(data.get("expiresAt")),
            created_at=_optional_str(data.get("createdAt")),
            updated_at=_optional_str(data.get("updatedAt")),
            extra=dict(extra),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "_id": self.member_id,
            "organizationId": self.organization_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "roleId": self.role_id,
            "status": self.status,
            "userId": self.user_id,
            "temporaryAccess": self.temporary_access,
            "expiresAt": self.expires_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        payload = _strip_none(payload)
        payload.update(self.extra)
        return payload

    @property
    def display_name(self) -> str:
        return self.name.strip() or self.email


@dataclass(frozen=True)
class TeamRoster:
    """Ordered team listing for one organization."""

    organization_id: str
    members: Tuple[TeamMember, ...] = ()

    @classmethod
    def from_list(cls, organization_id: str, rows: Sequence[Mapping[str, Any]]) -> "TeamRoster":
        if isinstance(rows, (str, bytes)) or not isinstance(rows, Sequence):
            raise ValueError("team listing must be a JSON array")
        return cls(organization_id=organization_id, members=tuple(TeamMember.from_dict(row) for row in rows))

    def to_list(self) -> list[Dict[str, Any]]:
        return [member.to_dict() for member in self.members]

    def index_of(self, member_id: str) -> int:
        for idx, member in enumerate(self.members):
            if member.member_id == member_id:
                return idx
        return -1

    def get(self, member_id: str) -> Optional[TeamMember]:
        idx = self.index_of(member_id)
        return self.members[idx] if idx >= 0 else None

    def find_email(self, email: str) -> Optional[TeamMember]:
        needle = email.strip().lower()
        for member in self.members:
            if member.email.strip().lower() == needle:
                return member
        return None

    def put(self, member: TeamMember, *, index: Optional[int] = None) -> "TeamRoster":
        """Replace *member* in place, or insert it at *index* (default: end)."""

        members = list(self.members)
        idx = self.index_of(member.member_id)
        if idx >= 0:
            members[idx] = member
        elif index is None or index < 0 or index > len(members):
            members.append(member)
        else:
            members.insert(index, member)
        return replace(self, members=tuple(members))

    def without(self, member_id: str) -> "TeamRoster":
        return replace(self, members=tuple(m for m in self.members if m.member_id != member_id))

    def active(self) -> Tuple[TeamMember, ...]:
        return tuple(m for m in self.members if not m.temporary_access)

    def temporary(self) -> Tuple[TeamMember, ...]:
        return tuple(m for m in self.members if m.temporary_access)


# ---------------------------------------------------------------------------
# Profile

_PROFILE_FIELDS = (
    ("first_name", "firstName"),
    ("last_name", "lastName"),
    ("email", "email"),
    ("phone", "phone"),
    ("address", "address"),
    ("city", "city"),
    ("country", "country"),
    ("zip", "zip"),
)


@dataclass(frozen=True)
class ProfileSettings:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    country: str = ""
    zip: str = ""
    default_address: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProfileSettings":
        data = _as_mapping(data, "profile")
        values: Dict[str, Any] = {}
        for attr, key in _PROFILE_FIELDS:
            values[attr] = str(data.get(key) or "")
        values["default_address"] = bool(data.get("defaultAddress", False))
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {key: getattr(self, attr) for attr, key in _PROFILE_FIELDS}
        payload["defaultAddress"] = self.default_address
        return payload


__all__ = [
    "DISPLAY_ROLES",
    "EMAIL_RE",
    "MARKETING_KEYS",
    "MEMBER_ROLES",
    "MEMBER_STATUSES",
    "NOTIFICATION_CHANNELS",
    "NOTIFICATION_ROWS",
    "OBJECT_ID_RE",
    "REQUESTABLE_STATUSES",
    "NotificationSettings",
    "ProfileSettings",
    "TeamMember",
    "TeamRoster",
    "default_channels",
    "default_marketing",
]
