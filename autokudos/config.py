from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenedAtPolicy(str, Enum):
    """What happens to the batch open time when a flush leaves members behind."""
    PRESERVE = "preserve"
    RESET = "reset"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_NAME: str = "AutoKudos"
    DEBUG: bool = False
    DATABASE_URL: str = "sqlite+aiosqlite:///./autokudos.db"

    # Strava
    SELF_ATHLETE_ID: int = 0
    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: str = ""
    STRAVA_REFRESH_TOKEN: str = ""
    STRAVA_ACCESS_TOKEN: str = ""
    STRAVA_VERIFY_TOKEN: str = ""
    STRAVA_API_BASE: str = "https://www.strava.com/api/v3"
    STRAVA_TOKEN_URL: str = "https://www.strava.com/api/v3/oauth/token"

    # Batching
    TIMEZONE: str = "Europe/London"
    SIZE_THRESHOLD: int = 25
    AGE_THRESHOLD_MINUTES: int = 60
    MAX_BATCH_DRAIN: int = 100
    SEND_DELAY_SECONDS: float = 1.5
    OPENED_AT_POLICY: OpenedAtPolicy = OpenedAtPolicy.RESET

    # Polling
    POLL_INTERVAL_MINUTES: int = 34
    QUIET_START_HOUR: int = 23
    QUIET_END_HOUR: int = 6

    KEEPALIVE_URL: str = ""
    KEEPALIVE_INTERVAL_MINUTES: int = 10

    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "autokudos@admin"


settings = Settings()


@dataclass(frozen=True)
class EngineConfig:
    """Everything the batching engine needs, fixed at construction."""
    self_id: int
    time_zone: str = "Europe/London"
    size_threshold: int = 25
    age_threshold: timedelta = timedelta(hours=1)
    max_drain: int = 100
    poll_interval: timedelta = timedelta(minutes=34)
    quiet_start_hour: int = 23
    quiet_end_hour: int = 6
    send_delay: float = 1.5
    opened_at_policy: OpenedAtPolicy = OpenedAtPolicy.RESET

    def __post_init__(self):
        if self.size_threshold <= 0:
            raise ValueError("size_threshold must be > 0")
        if self.max_drain <= 0:
            raise ValueError("max_drain must be > 0")
        if self.age_threshold <= timedelta(0):
            raise ValueError("age_threshold must be positive")
        if self.poll_interval <= timedelta(0):
            raise ValueError("poll_interval must be positive")
        if self.send_delay < 0:
            raise ValueError("send_delay must be >= 0")
        for hour in (self.quiet_start_hour, self.quiet_end_hour):
            if not 0 <= hour <= 23:
                raise ValueError("quiet window hours must be in 0..23")
        # Fails fast on an unknown zone name
        ZoneInfo(self.time_zone)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    def in_quiet_window(self, hour: int) -> bool:
        start, end = self.quiet_start_hour, self.quiet_end_hour
        if start == end:
            return False
        if start < end:
            return start <= hour < end
        return hour >= start or hour < end

    @classmethod
    def from_settings(cls, s: Settings) -> "EngineConfig":
        return cls(
            self_id=s.SELF_ATHLETE_ID,
            time_zone=s.TIMEZONE,
            size_threshold=s.SIZE_THRESHOLD,
            age_threshold=timedelta(minutes=s.AGE_THRESHOLD_MINUTES),
            max_drain=s.MAX_BATCH_DRAIN,
            poll_interval=timedelta(minutes=s.POLL_INTERVAL_MINUTES),
            quiet_start_hour=s.QUIET_START_HOUR,
            quiet_end_hour=s.QUIET_END_HOUR,
            send_delay=s.SEND_DELAY_SECONDS,
            opened_at_policy=s.OPENED_AT_POLICY,
        )
