from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/goldfinger.db"

    # Auth (tokens are issued by the identity provider, we only verify them)
    jwt_secret: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # Recurring transactions
    cron_secret: str = ""
    scheduler_enabled: bool = False
    recurring_cron_hour: int = 0
    recurring_cron_minute: int = 5
    recurring_max_iterations: int = 5000

    # Exchange rates
    exchange_rate_api_url: str = "https://api.frankfurter.app"
    exchange_rate_timeout: float = 10.0
    exchange_rate_cache_ttl: int = 60 * 60  # 1 hour
    default_currency: str = "EUR"

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url
