from pydantic_settings import BaseSettings
from pydantic import ConfigDict

class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env", extra="ignore")

    ENV: str = "development"
    APP_URL: str = "http://localhost:3000"

    DATABASE_URL: str = "sqlite:///./issue_tracker.db"

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_MAX_CONNECTIONS: int = 50

    # Access and refresh tokens are signed with different keys
    JWT_SECRET: str = "dev-jwt-secret"
    JWT_REFRESH_SECRET: str = "dev-jwt-refresh-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    SESSION_TIMEOUT_SECONDS: int = 7 * 24 * 60 * 60
    BCRYPT_ROUNDS: int = 12

    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "noreply@dits.dev"
    MAIL_SERVER: str = "smtp.example.com"
    MAIL_PORT: int = 587

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    RATE_LIMIT_MAX_REQUESTS: int = 100

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]


settings = Settings()
