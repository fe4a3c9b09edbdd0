from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://carewatch:carewatch@db:5432/carewatch"
    APP_ENV: str = "development"
    SECRET_KEY: str = "changeme-secret-key"
    LOG_LEVEL: str = "INFO"

    # "*" or a comma-separated list, e.g. "https://dashboard.example.org,https://admin.example.org"
    CORS_ORIGINS: str = "*"

    # Risk inbox defaults; the endpoint accepts 1-90 days
    TRIAGE_LOOKBACK_DAYS: int = Field(default=14, ge=1, le=90)
    TRIAGE_HIGH_INTENSITY_THRESHOLD: int = Field(default=8, ge=1, le=10)
    TRIAGE_DEVIATION_MARGIN: float = Field(default=3.0, gt=0)
    TRIAGE_DEVIATION_ENABLED: bool = False

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    @property
    def cors_origins_list(self) -> list[str]:
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return ["*"] if origins == ["*"] else origins


settings = Settings()
