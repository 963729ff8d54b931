"""
Centralized runtime configuration for the backend.

This module uses `python-dotenv` to read a local `.env` file during
development and exposes a Pydantic `Settings` model named `settings`.

Why this exists:
- Keeps configuration in one place so other modules import `settings`.
- Provides typed fields with defaults and derived data paths.

Environment variables used:
- `REPO_DIR` — git working tree that holds `public/data` (default: cwd).
- `PORT` — HTTP port for `uvicorn` (default 4000).
- `ADMIN_TOKEN` — optional token for admin-only routes. Empty disables the check.
- `ANON_COOKIE_SECRET` — HMAC secret for the anonymous identity cookie.
- `IMMICH_URL`, `IMMICH_API_KEYS` (comma list), `IMMICH_ALBUM_ID`.
- `GIT_PUBLISH` / `GIT_PUSH` — commit (and push) changed data files.
- `LOG_LEVEL`, `LOG_DIR` — loguru sinks.

Example `.env`:
IMMICH_URL=https://photos.example.com
IMMICH_API_KEYS=key1,key2
ADMIN_TOKEN=change-me
REPO_DIR=.

"""

from pathlib import Path
from typing import List
import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> List[str]:
    return [s.strip() for s in os.getenv(name, "").split(",") if s.strip()]


_REPO_DIR = Path(os.getenv("REPO_DIR") or os.getcwd()).resolve()


class Settings(BaseModel):
    """Typed settings container.

    All downstream code should import `settings` from this module (or
    receive a `Settings` instance). Tests build their own instance with a
    temporary `repo_dir` instead of touching the environment.
    """

    repo_dir: Path = _REPO_DIR
    port: int = int(os.getenv("PORT", "4000"))
    admin_token: str = os.getenv("ADMIN_TOKEN", "")
    anon_cookie_secret: str = os.getenv("ANON_COOKIE_SECRET", "dev-secret-change-me")

    immich_url: str = os.getenv("IMMICH_URL", "").rstrip("/")
    immich_api_keys: List[str] = _env_list("IMMICH_API_KEYS")
    # IMMICH_ALBUM_ID scopes imports; DEFAULT_ALBUM_ID is the legacy name
    immich_album_id: str = os.getenv("IMMICH_ALBUM_ID") or os.getenv("DEFAULT_ALBUM_ID", "")
    autoload_interval_s: int = int(os.getenv("AUTOLOAD_INTERVAL_S", "3600"))

    git_publish: bool = _env_flag("GIT_PUBLISH", (_REPO_DIR / ".git").exists())
    git_push: bool = _env_flag("GIT_PUSH", False)

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: str = os.getenv("LOG_DIR", "")

    @property
    def public_dir(self) -> Path:
        return self.repo_dir / "public"

    @property
    def data_dir(self) -> Path:
        return self.public_dir / "data"

    @property
    def days_dir(self) -> Path:
        return self.data_dir / "days"

    @property
    def interactions_dir(self) -> Path:
        return self.data_dir / "interactions"

    @property
    def day_index_file(self) -> Path:
        return self.days_dir / "index.json"

    @property
    def immich_api_key(self) -> str:
        """First configured Immich key, falling back to `IMMICH_API_KEY`."""

        return self.immich_api_keys[0] if self.immich_api_keys else os.getenv("IMMICH_API_KEY", "")


settings = Settings()
