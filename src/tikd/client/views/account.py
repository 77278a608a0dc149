"""Profile details and password change.

Both forms wait for the server before touching local state: the profile is a
save-button form, and a password change has nothing to show optimistically.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Optional

from tikd.client.control.coordinator import CommandBinding, CommandTicket, MutationCoordinator
from tikd.client.control.errors import ValidationError
from tikd.client.control.executor import RemoteCommandExecutor
from tikd.client.control.notifications import Notifier
from tikd.client.control.query_cache import QueryCache
from tikd.client.control.state_store import Store
from tikd.protocol.commands import (
    PASSWORD_CHANGE_KIND,
    PROFILE_UPDATE_KIND,
    PasswordChange,
    ProfileUpdate,
    profile_query_key,
)
from tikd.protocol.entities import EMAIL_RE, ProfileSettings

logger = logging.getLogger(__name__)

PROFILE_PATH = "/api/settings/profile"

# 8-72 chars (72 is the bcrypt input limit); lower, upper, digit and symbol
_STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,72}$")


def password_problem(password: Any) -> Optional[str]:
    """Return why *password* is too weak, or ``None`` when it is acceptable."""

    if not isinstance(password, str):
        return "Invalid password type."
    if len(password) < 8:
        return "Use at least 8 characters."
    if len(password) > 72:
        return "Password too long (72+ chars)."
    if not _STRONG_PASSWORD_RE.match(password):
        return "Use upper & lower case letters, a number, and a symbol."
    return None


def _validate_password(payload: PasswordChange, profile: ProfileSettings) -> None:
    if not payload.current or not payload.new or not payload.confirm:
        raise ValidationError("Both current and new passwords are required.", field="current")
    if payload.new != payload.confirm:
        raise ValidationError("Passwords do not match", field="confirm")
    problem = password_problem(payload.new)
    if problem is not None:
        raise ValidationError(problem, field="next")


def _validate_profile(payload: ProfileUpdate, profile: ProfileSettings) -> None:
    if not EMAIL_RE.match(payload.profile.email.strip()):
        raise ValidationError("Invalid email.", field="email")


def _commit_profile(profile: ProfileSettings, payload: ProfileUpdate, result: Any) -> ProfileSettings:
    # The route answers {ok: true}; the saved document is what we sent.
    saved = payload.profile
    return replace(saved, email=saved.email.strip().lower())


def _password_message(payload: PasswordChange, result: Any) -> str:
    if isinstance(result, dict) and isinstance(result.get("message"), str):
        return result["message"]
    return "Password updated successfully."


PROFILE_BINDING: CommandBinding[ProfileSettings] = CommandBinding(
    kind=PROFILE_UPDATE_KIND,
    commit=_commit_profile,
    invalidates=lambda p: (profile_query_key(),),
    validate=_validate_profile,
    success_message=lambda p, r: "Your profile was saved.",
    failure_message="Could not save profile.",
)

PASSWORD_BINDING: CommandBinding[ProfileSettings] = CommandBinding(
    kind=PASSWORD_CHANGE_KIND,
    commit=lambda profile, p, r: profile,
    validate=_validate_password,
    success_message=_password_message,
    failure_message="Failed to update password.",
)


class AccountPanel:
    """Profile form plus the change-password form."""

    def __init__(
        self,
        executor: RemoteCommandExecutor,
        *,
        cache: QueryCache,
        notifier: Notifier,
        initial: Optional[ProfileSettings] = None,
    ) -> None:
        self._executor = executor
        self._cache = cache
        self.store: Store[ProfileSettings] = Store(initial or ProfileSettings())
        self.coordinator: MutationCoordinator[ProfileSettings] = MutationCoordinator(
            self.store,
            executor,
            (PROFILE_BINDING, PASSWORD_BINDING),
            cache=cache,
            notifier=notifier,
            id_prefix="account",
        )

    @property
    def profile(self) -> ProfileSettings:
        return self.store.get()

    async def load(self, *, force: bool = False) -> ProfileSettings:
        raw = await self._cache.fetch(
            profile_query_key(),
            lambda: self._executor.fetch(PROFILE_PATH),
            force=force,
        )
        return self.coordinator.seed(ProfileSettings.from_dict(raw or {}))

    def save_profile(self, profile: ProfileSettings) -> CommandTicket:
        return self.coordinator.issue(ProfileUpdate(profile=profile))

    def change_password(self, current: str, new: str, confirm: str) -> CommandTicket:
        """Issue a password change; raises ValidationError before any request."""

        return self.coordinator.issue(PasswordChange(current=current, new=new, confirm=confirm))


__all__ = [
    "AccountPanel",
    "PASSWORD_BINDING",
    "PROFILE_BINDING",
    "password_problem",
]
