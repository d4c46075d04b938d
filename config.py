"""
Runtime configuration for AutoDash.

Credentials live in a local secrets file (token on line 1, project id on
line 2). Environment variables override the file so Render-style deploys
can inject them without touching disk.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from errors import ConfigError
from teamgantt_client import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

PLACEHOLDER_TOKEN = "YOUR_API_TOKEN_HERE"
DEFAULT_PORT = 3000
DEFAULT_TIMEZONE = "US/Eastern"

APP_DIR = os.path.dirname(os.path.abspath(__file__))


def _persistent_path(filename):
    """Use /data on Render (persistent disk), fall back to app dir for local dev."""
    if os.path.isdir("/data"):
        return os.path.join("/data", filename)
    return os.path.join(APP_DIR, filename)


@dataclass(frozen=True)
class Settings:
    api_token: str
    project_id: str
    cache_file: str
    base_url: str = DEFAULT_BASE_URL
    port: int = DEFAULT_PORT
    refresh_hour: Optional[int] = None
    timezone: str = DEFAULT_TIMEZONE

    @property
    def token_hint(self) -> str:
        """Short, non-secret prefix used in log lines."""
        return self.api_token[:4] + "..." if self.api_token else "NOT SET"


def read_secrets_file(path: str):
    """Return (token, project_id) from the secrets file.

    Missing lines come back as empty strings; a missing or unreadable file
    raises ConfigError.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().strip().splitlines()
    except OSError as e:
        raise ConfigError(f"Could not read secrets file {path}: {e}") from e

    token = lines[0].strip() if len(lines) > 0 else ""
    project_id = lines[1].strip() if len(lines) > 1 else ""
    return token, project_id


def load_settings(environ=None) -> Settings:
    """Build Settings from the secrets file and environment.

    Raises ConfigError when the token is missing or still the placeholder,
    or when no project id is configured.
    """
    env = os.environ if environ is None else environ

    token = env.get("AUTODASH_API_TOKEN", "").strip()
    project_id = env.get("AUTODASH_PROJECT_ID", "").strip()

    if not token or not project_id:
        secrets_file = env.get("AUTODASH_SECRETS_FILE") or os.path.join(APP_DIR, "secrets.txt")
        file_token, file_project_id = read_secrets_file(secrets_file)
        token = token or file_token
        project_id = project_id or file_project_id

    if not token or token == PLACEHOLDER_TOKEN:
        raise ConfigError("Please set your API token in secrets.txt (line 1)")
    if not project_id:
        raise ConfigError("Please set the Project ID in secrets.txt (line 2)")

    refresh_hour = None
    raw_hour = env.get("AUTODASH_REFRESH_HOUR", "").strip()
    if raw_hour:
        try:
            refresh_hour = int(raw_hour)
        except ValueError as e:
            raise ConfigError(f"AUTODASH_REFRESH_HOUR must be an integer, got {raw_hour!r}") from e
        if not 0 <= refresh_hour <= 23:
            raise ConfigError(f"AUTODASH_REFRESH_HOUR must be between 0 and 23, got {refresh_hour}")

    try:
        port = int(env.get("PORT", DEFAULT_PORT))
    except ValueError as e:
        raise ConfigError(f"PORT must be an integer, got {env.get('PORT')!r}") from e

    settings = Settings(
        api_token=token,
        project_id=project_id,
        cache_file=env.get("AUTODASH_CACHE_FILE") or _persistent_path("cache.json"),
        base_url=env.get("AUTODASH_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        port=port,
        refresh_hour=refresh_hour,
        timezone=env.get("AUTODASH_TIMEZONE", DEFAULT_TIMEZONE),
    )
    logger.info(f"Config loaded: project {settings.project_id}, token {settings.token_hint}, cache {settings.cache_file}")
    return settings
