"""Wire types for the dashboard mutation endpoints."""

from __future__ import annotations

from . import commands as _commands
from . import entities as _entities
from .commands import *  # noqa: F401,F403
from .entities import *  # noqa: F401,F403

__all__ = list(_commands.__all__) + list(_entities.__all__)
