from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Environment setting
    ENVIRONMENT: str = Field(
        "development", description="Environment: development, staging, production"
    )

    # API settings
    API_PREFIX: str = Field("")
    API_VERSION: int = 1
    DEBUG: bool = Field(False)
    ALLOWED_ORIGINS: str = Field("*")
    LOG_LEVEL: str = Field("INFO")

    # Database settings
    DB_HOST: str = Field("localhost")
    DB_PORT: int = Field(5432)
    DB_USER: str = Field("")
    DB_PASSWORD: str = Field("")
    DB_NAME: str = Field("carethread")
    DB_DRIVER: str = Field("postgresql+asyncpg")

    SQLITE_MODE: bool = True
    SQLITE_PATH: str = Field("carethread.db")

    # Jwt Security settings
    SECRET_KEY: str = Field("dev-secret-key-change-in-production")
    ALGORITHM: str = Field("HS256")

    # Discussion settings
    COMMENT_MAX_LENGTH: int = Field(2000)
    COMMENT_FLAG_THRESHOLD: int = Field(
        3, description="Distinct flags before a comment is held for moderation"
    )
    COMMENT_TOMBSTONE: str = Field("[Comment deleted]")
    RECENT_ACTIVITY_DAYS: int = Field(7)
    RESPONSE_OVERDUE_HOURS: int = Field(24)

    # Pagination
    DEFAULT_PAGE_SIZE: int = Field(20)
    MAX_PAGE_SIZE: int = Field(100)

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(True)
    DEFAULT_RATE_LIMIT: str = Field("120/minute")
    WRITE_RATE_LIMIT: str = Field("30/minute")

    # Token lifetime checked on every request
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60)

    # Uvicorn settings
    UVICORN_HOST: str = Field("0.0.0.0")
    UVICORN_PORT: int = Field(8000)
    WORKERS_COUNT: int = Field(1)
    RELOAD: bool = Field(False)

    @property
    def POSTGRESQL_DATABASE_URL(self) -> str:
        return (
            f"{self.DB_DRIVER}://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def SQLITE_DATABASE_URL(self) -> str:
        return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"

    @property
    def DATABASE_URL(self) -> str:
        return (
            self.SQLITE_DATABASE_URL
            if self.SQLITE_MODE
            else self.POSTGRESQL_DATABASE_URL
        )

    @field_validator("ALLOWED_ORIGINS")
    def validate_origins(cls, v: str) -> List[str]:
        return v.split(",") if v else []

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
