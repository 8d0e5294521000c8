"""
reward_ledger/config.py - Runtime settings read from the environment.

    REWARD_LEDGER_DB_PATH            SQLite file (default rewards.db)
    REWARD_LEDGER_LOCK_TIMEOUT       seconds to wait for the ledger (default 5)
    REWARD_LEDGER_ONE_CLAIM_PER_USER reject repeat claims of a reward (default false)
    REWARD_LEDGER_ADMIN_TOKEN        enables the admin routes when set
    REWARD_LEDGER_CORS_ORIGINS       comma separated (default *)
    REWARD_LEDGER_LOG_LEVEL          default INFO
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    db_path: str = "rewards.db"
    lock_timeout: float = 5.0
    once_per_user: bool = False
    admin_token: Optional[str] = None
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()
        settings.db_path = os.getenv("REWARD_LEDGER_DB_PATH", settings.db_path)

        timeout = os.getenv("REWARD_LEDGER_LOCK_TIMEOUT")
        if timeout:
            try:
                settings.lock_timeout = float(timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid REWARD_LEDGER_LOCK_TIMEOUT={timeout!r}")

        once = os.getenv("REWARD_LEDGER_ONE_CLAIM_PER_USER")
        if once is not None:
            settings.once_per_user = once.strip().lower() in _TRUTHY

        settings.admin_token = os.getenv("REWARD_LEDGER_ADMIN_TOKEN") or None

        origins = os.getenv("REWARD_LEDGER_CORS_ORIGINS")
        if origins:
            settings.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

        settings.log_level = os.getenv("REWARD_LEDGER_LOG_LEVEL", settings.log_level).upper()
        return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
