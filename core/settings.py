# =============================================================================
# core/settings.py  —  Runtime configuration
# =============================================================================
#
# Every knob comes from the environment (main.py loads .env first, so a
# local .env file works too).  Nothing else in core/ reads os.environ.
#
#   NPM_SENTINEL_PROJECT_ROOT   where pnpm-lock.yaml / package-lock.json /
#                               yarn.lock are looked up (default: cwd)
#   NPM_SENTINEL_HTTP_TIMEOUT   seconds per upstream call (default: 10)
#   NPM_SENTINEL_USER_AGENT     outbound User-Agent header
#   NPM_SENTINEL_LOG_LEVEL      logging level for the server (default: INFO)
#   GITHUB_TOKEN                optional, raises GitHub's rate limit
# =============================================================================

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from core.errors import ConfigError

DEFAULT_USER_AGENT = "NPM-Sentinel-MCP"
DEFAULT_HTTP_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class Settings:
    project_root: Path
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"
    github_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        raw_timeout = os.environ.get("NPM_SENTINEL_HTTP_TIMEOUT", "").strip()
        timeout = DEFAULT_HTTP_TIMEOUT_S
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError as exc:
                raise ConfigError(
                    f"NPM_SENTINEL_HTTP_TIMEOUT must be a number, got {raw_timeout!r}"
                ) from exc
            if timeout <= 0:
                raise ConfigError("NPM_SENTINEL_HTTP_TIMEOUT must be positive")

        root = os.environ.get("NPM_SENTINEL_PROJECT_ROOT", "").strip()
        return cls(
            project_root=Path(root).expanduser() if root else Path.cwd(),
            http_timeout_s=timeout,
            user_agent=os.environ.get("NPM_SENTINEL_USER_AGENT", "").strip() or DEFAULT_USER_AGENT,
            log_level=os.environ.get("NPM_SENTINEL_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            github_token=os.environ.get("GITHUB_TOKEN", "").strip() or None,
        )
