# config.py
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: str
    google_api_key: Optional[str]
    gemini_model: str
    gemini_temperature: float
    gemini_timeout_seconds: float
    secret_key: str
    access_token_expire_minutes: int
    skill_badge_module_id: str
    skill_badge_name: str
    log_level: str


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def load_settings() -> Settings:
    """Read settings from the environment (and .env, if present)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./skillpath.db"),
        google_api_key=os.getenv("GOOGLE_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        gemini_temperature=_float_env("GEMINI_TEMPERATURE", 0.0),
        gemini_timeout_seconds=_float_env("GEMINI_TIMEOUT_SECONDS", 8.0),
        secret_key=os.getenv("SECRET_KEY", "dev-secret-change-me"),
        # 30 days, same lifetime as the web session
        access_token_expire_minutes=_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 30 * 24 * 60),
        skill_badge_module_id=os.getenv("SKILL_BADGE_MODULE_ID", "module-id-for-specific-skill"),
        skill_badge_name=os.getenv("SKILL_BADGE_NAME", "specific-skill-badge"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    if not any(getattr(h, "_skillpath", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._skillpath = True
        root.addHandler(handler)
    root.setLevel(level or get_settings().log_level)
