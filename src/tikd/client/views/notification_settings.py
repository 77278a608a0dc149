"""Notification preferences: channel matrix and marketing toggles."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from tikd.client.control.coordinator import CommandBinding, CommandTicket, MutationCoordinator
from tikd.client.control.errors import ValidationError
from tikd.client.control.executor import RemoteCommandExecutor
from tikd.client.control.notifications import Notifier
from tikd.client.control.query_cache import QueryCache
from tikd.client.control.state_store import Store
from tikd.protocol.commands import (
    NOTIFICATION_MATRIX_KIND,
    NOTIFICATION_TOGGLE_KIND,
    FieldKey,
    MatrixUpdate,
    ToggleUpdate,
    notifications_query_key,
)
from tikd.protocol.entities import (
    MARKETING_KEYS,
    NOTIFICATION_CHANNELS,
    NOTIFICATION_ROWS,
    NotificationSettings,
)

logger = logging.getLogger(__name__)

SETTINGS_PATH = "/api/settings/notifications"
SUCCESS_MESSAGE = "Notification preference updated."
FAILURE_MESSAGE = "Could not update preference."


def _read(settings: NotificationSettings, field_key: FieldKey) -> bool:
    if field_key[0] == "channels":
        _, row, channel = field_key
        return settings.channel(row, channel)
    _, key = field_key
    return bool(settings.marketing[key])


def _write(settings: NotificationSettings, field_key: FieldKey, value: bool) -> NotificationSettings:
    if field_key[0] == "channels":
        _, row, channel = field_key
        return settings.with_channel(row, channel, value)
    _, key = field_key
    return settings.with_marketing(key, value)


def _replace_with_server(settings: NotificationSettings, payload: Any, result: Any) -> NotificationSettings:
    if not isinstance(result, Mapping):
        raise ValueError("notification settings response must be an object")
    return NotificationSettings.from_dict(result)


def _validate_matrix(payload: MatrixUpdate, settings: NotificationSettings) -> None:
    if payload.row not in NOTIFICATION_ROWS:
        raise ValidationError(f"Unknown notification row {payload.row!r}.", field="row")
    if payload.channel not in NOTIFICATION_CHANNELS:
        raise ValidationError(f"Unknown notification channel {payload.channel!r}.", field="channel")
    if not isinstance(payload.value, bool):
        raise ValidationError("Preference value must be true or false.", field="value")


def _validate_toggle(payload: ToggleUpdate, settings: NotificationSettings) -> None:
    if payload.key not in MARKETING_KEYS:
        raise ValidationError(f"Unknown marketing preference {payload.key!r}.", field="key")
    if not isinstance(payload.value, bool):
        raise ValidationError("Preference value must be true or false.", field="value")


def _success(payload: Any, result: Any) -> str:
    return SUCCESS_MESSAGE


def _invalidates(payload: Any):
    return (notifications_query_key(),)


MATRIX_BINDING: CommandBinding[NotificationSettings] = CommandBinding(
    kind=NOTIFICATION_MATRIX_KIND,
    commit=_replace_with_server,
    field=lambda p: ("channels", p.row, p.channel),
    apply=lambda s, p: s.with_channel(p.row, p.channel, p.value),
    read=_read,
    write=_write,
    invalidates=_invalidates,
    validate=_validate_matrix,
    success_message=_success,
    failure_message=FAILURE_MESSAGE,
)

TOGGLE_BINDING: CommandBinding[NotificationSettings] = CommandBinding(
    kind=NOTIFICATION_TOGGLE_KIND,
    commit=_replace_with_server,
    field=lambda p: ("marketing", p.key),
    apply=lambda s, p: s.with_marketing(p.key, p.value),
    read=_read,
    write=_write,
    invalidates=_invalidates,
    validate=_validate_toggle,
    success_message=_success,
    failure_message=FAILURE_MESSAGE,
)


class NotificationSettingsPanel:
    """Client side of the notification settings screen."""

    def __init__(
        self,
        executor: RemoteCommandExecutor,
        *,
        cache: QueryCache,
        notifier: Notifier,
        initial: Optional[NotificationSettings] = None,
    ) -> None:
        self._executor = executor
        self._cache = cache
        self.store: Store[NotificationSettings] = Store(initial or NotificationSettings())
        self.coordinator: MutationCoordinator[NotificationSettings] = MutationCoordinator(
            self.store,
            executor,
            (MATRIX_BINDING, TOGGLE_BINDING),
            cache=cache,
            notifier=notifier,
            id_prefix="notif",
        )

    @property
    def settings(self) -> NotificationSettings:
        return self.store.get()

    async def load(self, *, force: bool = False) -> NotificationSettings:
        """Fetch settings (from cache unless stale) and seed the store."""

        raw = await self._cache.fetch(
            notifications_query_key(),
            lambda: self._executor.fetch(SETTINGS_PATH),
            force=force,
        )
        settings = NotificationSettings.from_dict(raw)
        logger.debug("notification settings loaded")
        return self.coordinator.seed(settings)

    async def refresh_if_stale(self) -> NotificationSettings:
        if self._cache.is_stale(notifications_query_key()):
            return await self.load()
        return self.settings

    def set_channel(self, row: str, channel: str, value: bool) -> CommandTicket:
        return self.coordinator.issue(MatrixUpdate(row=row, channel=channel, value=value))

    def set_marketing(self, key: str, value: bool) -> CommandTicket:
        return self.coordinator.issue(ToggleUpdate(key=key, value=value))


__all__ = [
    "MATRIX_BINDING",
    "NotificationSettingsPanel",
    "TOGGLE_BINDING",
]
