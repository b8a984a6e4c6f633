from __future__ import annotations

from dataclasses import dataclass
import os


TRUTHY_VALUES = {"1", "true", "yes", "on"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
DEFAULT_BACKUP_MAX_PER_USER = 10


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def env_int(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"Invalid integer env {name}={raw!r}") from exc


@dataclass(frozen=True)
class BotConfig:
    discord_token: str
    database_url: str
    db_echo: bool = False
    log_level: str = "INFO"
    command_guild_id: int = 0
    backup_max_per_user: int = DEFAULT_BACKUP_MAX_PER_USER
    interaction_timeout_seconds: int = 300
    schedule_poll_seconds: int = 300

    def validate(self) -> None:
        if not self.database_url:
            raise ValueError("DATABASE_URL must be set")
        if self.log_level not in VALID_LOG_LEVELS:
            valid = ", ".join(sorted(VALID_LOG_LEVELS))
            raise ValueError(f"LOG_LEVEL must be one of: {valid}")
        if self.command_guild_id < 0:
            raise ValueError("COMMAND_GUILD_ID must be >= 0")
        if not 1 <= self.backup_max_per_user <= 100:
            raise ValueError("BACKUP_MAX_PER_USER must be between 1 and 100")
        if self.interaction_timeout_seconds < 30:
            raise ValueError("INTERACTION_TIMEOUT_SECONDS must be >= 30")
        if self.schedule_poll_seconds < 30:
            raise ValueError("SCHEDULE_POLL_SECONDS must be >= 30")


def load_config() -> BotConfig:
    cfg = BotConfig(
        discord_token=os.getenv("DISCORD_TOKEN", ""),
        database_url=os.getenv("DATABASE_URL", ""),
        db_echo=env_bool("DB_ECHO", default=False),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        command_guild_id=env_int("COMMAND_GUILD_ID", default=0),
        backup_max_per_user=env_int("BACKUP_MAX_PER_USER", default=DEFAULT_BACKUP_MAX_PER_USER),
        interaction_timeout_seconds=env_int("INTERACTION_TIMEOUT_SECONDS", default=300),
        schedule_poll_seconds=env_int("SCHEDULE_POLL_SECONDS", default=300),
    )
    cfg.validate()
    return cfg
