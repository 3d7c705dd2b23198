from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "db.sqlite"

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "Admin@123"
DEFAULT_ADMIN_DISPLAY_NAME = "Admin"


def _as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _non_empty(value: str | None, default: str) -> str:
    return value if value else default


def resolve_db_path(value: str | None) -> Path:
    raw = (value or "").strip()
    if not raw:
        return DEFAULT_DB_PATH
    return Path(raw).expanduser().resolve()


@dataclass(frozen=True)
class Settings:
    sqlite_db_path: Path
    bootstrap_admin_username: str
    bootstrap_admin_password: str
    bootstrap_admin_display_name: str
    bcrypt_rounds: int
    log_level: str


def load_settings() -> Settings:
    return Settings(
        sqlite_db_path=resolve_db_path(os.getenv("SQLITE_DB_PATH")),
        bootstrap_admin_username=_non_empty(os.getenv("BOOTSTRAP_ADMIN_USERNAME"), DEFAULT_ADMIN_USERNAME),
        bootstrap_admin_password=_non_empty(os.getenv("BOOTSTRAP_ADMIN_PASSWORD"), DEFAULT_ADMIN_PASSWORD),
        bootstrap_admin_display_name=_non_empty(
            os.getenv("BOOTSTRAP_ADMIN_DISPLAY_NAME"),
            DEFAULT_ADMIN_DISPLAY_NAME,
        ),
        # bcrypt only accepts cost factors 4..31.
        bcrypt_rounds=max(4, min(31, _as_int(os.getenv("BCRYPT_ROUNDS"), 10))),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )


settings = load_settings()
