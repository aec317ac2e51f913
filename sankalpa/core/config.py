import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CONFIG_STRICT: bool = False

    # Backing store
    ACCOUNT_STORE: str = "memory"  # memory | sql
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    STORE_MAX_RETRIES: int = 3

    # Economy
    STARTING_COINS: int = 50
    LEVEL_UP_BONUS: int = 50
    XP_PER_LEVEL: int = 100

    # Commitment contract
    CONTRACT_STAKE: int = 100
    CONTRACT_REWARD: int = 150
    CONTRACT_DAYS: int = 7

    # Change feed
    WS_MAX_SOCKETS_PER_ACCOUNT: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Check store selection and economy constants.

    Strict mode raises RuntimeError on the first problem; otherwise each
    problem is logged as a warning and False is returned.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("sankalpa")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    if cfg.ACCOUNT_STORE not in {"memory", "sql"}:
        problems.append(f"ACCOUNT_STORE must be 'memory' or 'sql', got {cfg.ACCOUNT_STORE!r}")
    if cfg.ACCOUNT_STORE == "sql" and not (cfg.DATABASE_URL or cfg.TEST_DATABASE_URL):
        problems.append("Missing required configuration: DATABASE_URL")
    if cfg.CONTRACT_STAKE <= 0 or cfg.CONTRACT_REWARD <= 0 or cfg.CONTRACT_DAYS <= 0:
        problems.append("Contract stake, reward and duration must be positive")
    if cfg.LOG_LEVEL.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        problems.append(f"LOG_LEVEL {cfg.LOG_LEVEL!r} is not a logging level")
    if cfg.STARTING_COINS < 0:
        problems.append("STARTING_COINS must not be negative")
    if cfg.WS_MAX_SOCKETS_PER_ACCOUNT < 1:
        problems.append("WS_MAX_SOCKETS_PER_ACCOUNT must be at least 1")

    for message in problems:
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return not problems
