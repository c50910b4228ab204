from typing import Annotated, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_PROJECT_NAME = "Finance Auth API"
DEFAULT_API_V1_PREFIX = "/api/v1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    PROJECT_NAME: str = DEFAULT_PROJECT_NAME
    API_V1_PREFIX: str = DEFAULT_API_V1_PREFIX
    ENV: str = 'development'
    DEBUG: bool = False

    DATABASE_URL: str = 'sqlite:///./finance.db'
    LOG_LEVEL: str = 'INFO'
    SECURITY_LOG_PATH: Optional[str] = None
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ['*']
    AUTO_CREATE_TABLES: bool = False

    # HS256 needs at least 32 bytes; startup fails without it.
    SECRET_KEY: str = ''
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_CLEANUP_INTERVAL_SECONDS: int = 60 * 60
    PASSWORD_HASH_ROUNDS: int = 12

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_IDLE_SECONDS: int = 60
    RATE_LIMIT_LOGIN_CAPACITY: int = 5
    RATE_LIMIT_LOGIN_WINDOW_SECONDS: int = 60
    RATE_LIMIT_REGISTER_CAPACITY: int = 3
    RATE_LIMIT_REGISTER_WINDOW_SECONDS: int = 60
    RATE_LIMIT_REFRESH_CAPACITY: int = 10
    RATE_LIMIT_REFRESH_WINDOW_SECONDS: int = 60
    RATE_LIMIT_OAUTH_CAPACITY: int = 10
    RATE_LIMIT_OAUTH_WINDOW_SECONDS: int = 60

    GOOGLE_CLIENT_ID: str = ''
    GOOGLE_CLIENT_SECRET: str = ''
    GOOGLE_REDIRECT_URI: str = 'http://localhost:8000/api/v1/auth/oauth2/google/callback'
    OAUTH_STATE_EXPIRE_MINUTES: int = 10

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, value):  # type: ignore[override]
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return []
            if value == '*':
                return ['*']
            return [item.strip() for item in value.split(',') if item.strip()]
        return value


settings = Settings()
