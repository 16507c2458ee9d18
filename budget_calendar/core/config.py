from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Budget Calendar"
    ENV: str = "dev"

    # Absolute path so the database does not depend on the working directory
    _default_db_path = Path(__file__).resolve().parents[2] / "budget_calendar.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "America/New_York"

    # Calendar aggregates sum accounts nominally in one display currency
    DISPLAY_CURRENCY: str = "USD"

    # Initial values for the AppSettings row
    AUTO_REALIZE_DEFAULT: bool = False
    PAST_DUE_LOOKBACK_DEFAULT: int = 30

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="BUDGET_", case_sensitive=False)


settings = Settings()
