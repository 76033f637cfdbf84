from datetime import (
    timedelta,
)
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)
from pydantic import Field

from . import (
    constants,
)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./coupons.db"
    env: str = "dev"
    lock_duration: timedelta = constants.DEFAULT_LOCK_DURATION
    generation_max_rounds: int = Field(
        default=constants.DEFAULT_GENERATION_MAX_ROUNDS,
        gt=0,
    )
    assign_max_attempts: int = Field(
        default=constants.DEFAULT_ASSIGN_MAX_ATTEMPTS,
        gt=0,
    )
    # Warn when a batch asks for more than this share of the keyspace
    generation_warning_ratio: float = 0.1
    # Max IN-list size for collision lookups
    lookup_chunk_size: int = Field(default=500, gt=0)
    unlock_sweep_enabled: bool = True
    unlock_sweep_interval: timedelta = timedelta(minutes=1)
    json_logs: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")
