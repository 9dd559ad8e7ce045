from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    LOG_LEVEL: str = "INFO"

    # CORS origins for the POS / Kanban front end
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Account lockout
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 15

    # Supervisor authorization gate (passlib hashes, never plaintext)
    SUPERVISOR_PIN_HASHES: list[str] = []
    MASTER_OVERRIDE_HASH: str | None = None
    PENDING_AUTHORIZATION_TTL_SECONDS: int = 300
    MAX_AUTHORIZATION_ATTEMPTS: int = 5

    # Celery (periodic sweep of expired authorizations)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"


settings = Settings()  # type: ignore[call-arg]
