"""Client components for the Tikd dashboard settings and team screens."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["AccountPanel", "NotificationSettingsPanel", "TeamMembersPanel", "ClientConfig"]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "AccountPanel": ("tikd.client.views.account", "AccountPanel"),
        "NotificationSettingsPanel": ("tikd.client.views.notification_settings", "NotificationSettingsPanel"),
        "TeamMembersPanel": ("tikd.client.views.team_members", "TeamMembersPanel"),
        "ClientConfig": ("tikd.client.config", "ClientConfig"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
