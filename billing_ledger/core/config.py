from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Billing Ledger API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Payment distribution, credit ledger and penalty engine for HOA billing"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "billing_ledger"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Money handling (all amounts are integer centavos)
    CURRENCY_TOLERANCE: float = 0.2      # max distance from an integer absorbed as float noise
    PENALTY_UPDATE_TOLERANCE: int = 1    # centavos; smaller penalty drifts are not rewritten

    # Credit ledger
    CREDIT_HISTORY_LIMIT: int = 50
    CREDIT_WRITE_RETRIES: int = 5

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
