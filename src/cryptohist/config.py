from pydantic_settings import BaseSettings, SettingsConfigDict

# Quotes are always priced against a single currency
QUOTE_CURRENCY = "USD"


class Settings(BaseSettings):
    db_path: str = "./historical.db"
    log_level: str = "INFO"

    # CryptoCompare API
    base_url: str = "https://min-api.cryptocompare.com/data"
    api_key: str | None = None
    page_size: int = 2000
    aggregate: int = 1

    # HTTP
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_initial_wait: float = 0.4
    retry_max_wait: float = 3.0

    # Pause between two page requests for the same instrument
    request_delay: float = 0.5

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CRYPTOHIST_", extra="ignore")


settings = Settings()
