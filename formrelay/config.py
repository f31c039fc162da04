from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    RELAY_DB_URL: str = "sqlite+aiosqlite:///./formrelay.db"

    # --- Minimal admin auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Backing store connection ---
    DB_CONNECT_MAX_ATTEMPTS: int = 5
    DB_CONNECT_INITIAL_DELAY_S: float = 1.0
    DB_CONNECT_TIMEOUT_S: float = 10.0
    DB_QUERY_TIMEOUT_S: float = 30.0

    # fast probe on every acquire(), slower one from the background job
    DB_PROBE_TIMEOUT_S: float = 1.0
    DB_HEALTH_CHECK_TIMEOUT_S: float = 2.0
    DB_HEALTH_CHECK_INTERVAL_S: int = 30

    # --- Verification ---
    VERIFICATION_WINDOW_S: int = 300  # 5 minutes

    # --- Outbound webhook ---
    WEBHOOK_TIMEOUT_S: float = 10.0

    # --- CORS (page builder posts cross-origin) ---
    CORS_ALLOW_ORIGINS: list[str] = ["*"]


settings = Settings()
