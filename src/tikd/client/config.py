"""Runtime configuration for the dashboard sync client.

Values come from the environment once, at construction time, and are passed
explicitly into the executor and notification feed.  Nothing downstream reads
the environment on its own.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from tikd.utils.env import env_bool, env_first, env_float, env_int

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 10.0
    toast_duration_ms: int = 3000
    debug: bool = False
    # Extra request headers (e.g. a session cookie for the API routes)
    headers: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_env(base_url: Optional[str] = None) -> "ClientConfig":
        url = base_url or env_first(("TIKD_BASE_URL", "NEXTAUTH_URL"), DEFAULT_BASE_URL) or DEFAULT_BASE_URL
        timeout_s = env_float("TIKD_HTTP_TIMEOUT_S", 10.0)
        if timeout_s <= 0:
            timeout_s = 10.0
        toast_ms = max(0, env_int("TIKD_TOAST_DURATION_MS", 3000))
        debug = env_bool("TIKD_SYNC_DEBUG", False)

        headers: Dict[str, str] = {}
        cookie = env_first(("TIKD_SESSION_COOKIE",))
        if cookie:
            headers["Cookie"] = cookie

        return ClientConfig(
            base_url=url.rstrip("/"),
            timeout_s=timeout_s,
            toast_duration_ms=toast_ms,
            debug=debug,
            headers=headers,
        )


__all__ = ["DEFAULT_BASE_URL", "ClientConfig"]
