"""Runtime configuration read from the environment (and a local .env file)."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


OIOI_HOSTNAME = os.getenv("OIOI_HOSTNAME", "api.plugsurfing.com")
OIOI_PORT = int(os.getenv("OIOI_PORT", "443"))
OIOI_URL_PREFIX = os.getenv("OIOI_URL_PREFIX", "/api/v4/request")
OIOI_API_KEY = os.getenv("OIOI_API_KEY", "")
OIOI_PARTNER_ID = os.getenv("OIOI_PARTNER_ID") or None
OIOI_REQUEST_TIMEOUT = float(os.getenv("OIOI_REQUEST_TIMEOUT", "60"))

TOPOLOGY_INTERVAL = float(os.getenv("OIOI_TOPOLOGY_INTERVAL", "300"))
STATUS_INTERVAL = float(os.getenv("OIOI_STATUS_INTERVAL", "10"))
SESSIONS_INTERVAL = float(os.getenv("OIOI_SESSIONS_INTERVAL", "60"))

DISABLE_PUSH_DATA = _flag("OIOI_DISABLE_PUSH_DATA")
DISABLE_PUSH_STATUS = _flag("OIOI_DISABLE_PUSH_STATUS")
DISABLE_SEND_CHARGE_DETAIL_RECORDS = _flag("OIOI_DISABLE_SEND_CHARGE_DETAIL_RECORDS")

BACKOFF_BASE = float(os.getenv("OIOI_BACKOFF_BASE", "10"))
BACKOFF_MAX = float(os.getenv("OIOI_BACKOFF_MAX", "900"))


@dataclass
class StreamSettings:
    """Schedule of one sync stream. ``enabled`` may be flipped at runtime."""

    interval: float
    enabled: bool = True

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError("The sync interval must be positive!")


@dataclass
class SyncSettings:
    """Schedule and retry policy of all sync streams."""

    topology: StreamSettings = field(default_factory=lambda: StreamSettings(TOPOLOGY_INTERVAL))
    status: StreamSettings = field(default_factory=lambda: StreamSettings(STATUS_INTERVAL))
    sessions: StreamSettings = field(default_factory=lambda: StreamSettings(SESSIONS_INTERVAL))
    backoff_base: float = BACKOFF_BASE
    backoff_max: float = BACKOFF_MAX
    request_timeout: float = OIOI_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            topology=StreamSettings(TOPOLOGY_INTERVAL, enabled=not DISABLE_PUSH_DATA),
            status=StreamSettings(STATUS_INTERVAL, enabled=not DISABLE_PUSH_STATUS),
            sessions=StreamSettings(
                SESSIONS_INTERVAL, enabled=not DISABLE_SEND_CHARGE_DETAIL_RECORDS
            ),
        )

    def backoff(self, failures: int) -> float:
        """Delay after ``failures`` consecutive runs with retryable errors."""
        if failures <= 0:
            return 0.0
        # exponent clamped to stay within float range
        return min(self.backoff_max, self.backoff_base * 2 ** min(failures - 1, 32))
