"""Organization team roster: role/status edits, invites and removals."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional, Tuple

from tikd.client.control.coordinator import CommandBinding, CommandTicket, MutationCoordinator
from tikd.client.control.errors import ValidationError
from tikd.client.control.executor import RemoteCommandExecutor
from tikd.client.control.notifications import Notifier
from tikd.client.control.query_cache import QueryCache
from tikd.client.control.state_store import Store
from tikd.protocol.commands import (
    MEMBER_INVITE_KIND,
    MEMBER_REMOVE_KIND,
    MEMBER_RESEND_KIND,
    MEMBER_UPDATE_KIND,
    FieldKey,
    MemberInvite,
    MemberRemove,
    MemberResend,
    MemberUpdate,
    org_team_query_key,
)
from tikd.protocol.entities import (
    EMAIL_RE,
    MEMBER_ROLES,
    OBJECT_ID_RE,
    REQUESTABLE_STATUSES,
    TeamMember,
    TeamRoster,
)

logger = logging.getLogger(__name__)

# Snapshot of one roster slot: (index, member) where member is None when absent
RosterSlot = Tuple[int, Optional[TeamMember]]


def _member_field(payload: Any) -> FieldKey:
    return ("member", payload.member_id)


def _read_slot(roster: TeamRoster, field_key: FieldKey) -> RosterSlot:
    member_id = field_key[1]
    idx = roster.index_of(member_id)
    if idx < 0:
        return idx, None
    return idx, roster.members[idx]


def _write_slot(roster: TeamRoster, field_key: FieldKey, slot: RosterSlot) -> TeamRoster:
    index, member = slot
    if member is None:
        return roster.without(field_key[1])
    return roster.put(member, index=index)


def _apply_update(roster: TeamRoster, payload: MemberUpdate) -> TeamRoster:
    current = roster.get(payload.member_id)
    if current is None:
        return roster
    changes = {}
    if payload.role is not None:
        changes["role"] = payload.role
        changes["role_id"] = None
    if payload.role_id is not None:
        changes["role"] = "member"
        changes["role_id"] = payload.role_id
    if payload.status is not None:
        changes["status"] = payload.status
    if payload.temporary_access is not None:
        changes["temporary_access"] = payload.temporary_access
    if payload.expires_at is not None:
        changes["expires_at"] = payload.expires_at
    return roster.put(replace(current, **changes))


def _commit_member(roster: TeamRoster, payload: Any, result: Any) -> TeamRoster:
    return roster.put(TeamMember.from_dict(result))


def _commit_invite(roster: TeamRoster, payload: MemberInvite, result: Any) -> TeamRoster:
    member_doc = result.get("member") if isinstance(result, Mapping) else None
    if member_doc is None:
        return roster
    return roster.put(TeamMember.from_dict(member_doc))


def _commit_remove(roster: TeamRoster, payload: MemberRemove, result: Any) -> TeamRoster:
    return roster.without(payload.member_id)


def _team_key(payload: Any):
    return (org_team_query_key(payload.organization_id),)


def _validate_update(payload: MemberUpdate, roster: TeamRoster) -> None:
    body = payload.to_body()
    if not body:
        raise ValidationError("Nothing to update.")
    if payload.role is not None and payload.role not in MEMBER_ROLES:
        raise ValidationError(f"Unknown role {payload.role!r}.", field="role")
    if payload.role is not None and payload.role_id is not None:
        raise ValidationError("Provide either role or roleId, not both.", field="roleId")
    if payload.role_id is not None and not OBJECT_ID_RE.match(payload.role_id):
        raise ValidationError("Invalid role id.", field="roleId")
    if payload.status is not None and payload.status not in REQUESTABLE_STATUSES:
        raise ValidationError(f"Status {payload.status!r} cannot be requested.", field="status")
    if roster.get(payload.member_id) is None:
        raise ValidationError("Member not found.", field="memberId")


def _validate_invite(payload: MemberInvite, roster: TeamRoster) -> None:
    if not EMAIL_RE.match(payload.email.strip()):
        raise ValidationError("Enter a valid email address.", field="email")
    if payload.role is None and payload.role_id is None:
        raise ValidationError("Either role or roleId is required.", field="role")
    if payload.role is not None and payload.role_id is not None:
        raise ValidationError("Provide either role or roleId, not both.", field="roleId")
    if payload.role is not None and payload.role not in MEMBER_ROLES:
        raise ValidationError(f"Unknown role {payload.role!r}.", field="role")
    if payload.role_id is not None and not OBJECT_ID_RE.match(payload.role_id):
        raise ValidationError("Invalid role id.", field="roleId")
    if payload.temporary_access and not payload.expires_at:
        raise ValidationError("expiresAt is required for temporary access.", field="expiresAt")


def _validate_member_exists(payload: Any, roster: TeamRoster) -> None:
    if roster.get(payload.member_id) is None:
        raise ValidationError("Member not found.", field="memberId")


UPDATE_BINDING: CommandBinding[TeamRoster] = CommandBinding(
    kind=MEMBER_UPDATE_KIND,
    commit=_commit_member,
    field=_member_field,
    apply=_apply_update,
    read=_read_slot,
    write=_write_slot,
    invalidates=_team_key,
    validate=_validate_update,
    success_message=lambda p, r: "Member updated.",
    failure_message="Could not update member.",
)

RESEND_BINDING: CommandBinding[TeamRoster] = CommandBinding(
    kind=MEMBER_RESEND_KIND,
    commit=_commit_member,
    invalidates=_team_key,
    validate=_validate_member_exists,
    success_message=lambda p, r: "Invitation resent.",
    failure_message="Could not resend invitation.",
)

INVITE_BINDING: CommandBinding[TeamRoster] = CommandBinding(
    kind=MEMBER_INVITE_KIND,
    commit=_commit_invite,
    invalidates=_team_key,
    validate=_validate_invite,
    success_message=lambda p, r: f"Invitation sent to {p.email.strip().lower()}.",
    failure_message="Could not send invitation.",
)

REMOVE_BINDING: CommandBinding[TeamRoster] = CommandBinding(
    kind=MEMBER_REMOVE_KIND,
    commit=_commit_remove,
    field=_member_field,
    apply=lambda roster, p: roster.without(p.member_id),
    read=_read_slot,
    write=_write_slot,
    invalidates=_team_key,
    validate=_validate_member_exists,
    success_message=lambda p, r: "Member removed.",
    failure_message="Could not remove member.",
)


class TeamMembersPanel:
    """Team management for one organization."""

    def __init__(
        self,
        organization_id: str,
        executor: RemoteCommandExecutor,
        *,
        cache: QueryCache,
        notifier: Notifier,
        initial: Optional[TeamRoster] = None,
    ) -> None:
        self.organization_id = organization_id
        self._executor = executor
        self._cache = cache
        self.store: Store[TeamRoster] = Store(initial or TeamRoster(organization_id=organization_id))
        self.coordinator: MutationCoordinator[TeamRoster] = MutationCoordinator(
            self.store,
            executor,
            (UPDATE_BINDING, RESEND_BINDING, INVITE_BINDING, REMOVE_BINDING),
            cache=cache,
            notifier=notifier,
            id_prefix="team",
        )

    @property
    def query_key(self):
        return org_team_query_key(self.organization_id)

    @property
    def roster(self) -> TeamRoster:
        return self.store.get()

    async def load(self, *, force: bool = False) -> TeamRoster:
        raw = await self._cache.fetch(
            self.query_key,
            lambda: self._executor.fetch(f"/api/organizations/{self.organization_id}/team"),
            force=force,
        )
        roster = TeamRoster.from_list(self.organization_id, raw or [])
        logger.debug("team roster loaded: org=%s members=%d", self.organization_id, len(roster.members))
        return self.coordinator.seed(roster)

    async def refresh_if_stale(self) -> TeamRoster:
        if self._cache.is_stale(self.query_key):
            return await self.load()
        return self.roster

    # ------------------------------------------------------------------
    def set_role(self, member_id: str, role: str) -> CommandTicket:
        return self._update(member_id, role=role)

    def set_custom_role(self, member_id: str, role_id: str) -> CommandTicket:
        return self._update(member_id, role_id=role_id)

    def set_status(self, member_id: str, status: str) -> CommandTicket:
        return self._update(member_id, status=status)

    def set_temporary_access(self, member_id: str, enabled: bool, *, expires_at: Optional[str] = None) -> CommandTicket:
        if enabled and not expires_at:
            raise ValidationError("expiresAt is required for temporary access.", field="expiresAt")
        return self._update(member_id, temporary_access=enabled, expires_at=expires_at if enabled else None)

    def resend_invite(self, member_id: str) -> CommandTicket:
        return self.coordinator.issue(MemberResend(organization_id=self.organization_id, member_id=member_id))

    def remove(self, member_id: str) -> CommandTicket:
        return self.coordinator.issue(MemberRemove(organization_id=self.organization_id, member_id=member_id))

    def invite(
        self,
        email: str,
        *,
        role: Optional[str] = None,
        role_id: Optional[str] = None,
        temporary_access: bool = False,
        expires_at: Optional[str] = None,
        apply_to_existing: bool = False,
        apply_to_future: bool = False,
    ) -> CommandTicket:
        return self.coordinator.issue(
            MemberInvite(
                organization_id=self.organization_id,
                email=email,
                role=role,
                role_id=role_id,
                temporary_access=temporary_access,
                expires_at=expires_at,
                apply_to_existing=apply_to_existing,
                apply_to_future=apply_to_future,
            )
        )

    def _update(self, member_id: str, **fields: Any) -> CommandTicket:
        return self.coordinator.issue(MemberUpdate(organization_id=self.organization_id, member_id=member_id, **fields))


__all__ = [
    "INVITE_BINDING",
    "REMOVE_BINDING",
    "RESEND_BINDING",
    "TeamMembersPanel",
    "UPDATE_BINDING",
]
