from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_SECRET_KEY = "dev-secret-key-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret_key: Optional[SecretStr] = None
    algorithm: str = "HS256"
    jwt_issuer: str = "fintrack"
    jwt_audience: str = "fintrack-clients"
    access_token_expire_days: int = Field(default=7, ge=1)

    database_url: str = "sqlite:///./fintrack.db"

    # Comma separated list, "*" allows every origin
    cors_origins: str = "*"

    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _require_secret_outside_development(self) -> "Settings":
        if self.secret_key is None or not self.secret_key.get_secret_value():
            if self.app_env != "development":
                raise ValueError("SECRET_KEY must be set outside development")
            self.secret_key = SecretStr(DEV_SECRET_KEY)
        return self

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Settings loaded once per process. Call get_settings.cache_clear() to reload."""
    return Settings()
