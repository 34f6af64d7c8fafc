from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # API Settings
    PROJECT_NAME: str = "Aguas Billing API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Water utility billing and payment reconciliation API"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    DATABASE_NAME: str = "aguas_billing"

    # JWT
    JWT_SECRET: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Shared secret the payment gateway sends with its callbacks
    GATEWAY_WEBHOOK_SECRET: str = "change-this-in-production"

    # Ledger
    TRANSACTION_TIMEOUT_SECONDS: float = 10.0
    CURRENCY: str = "CLP"
    LOCALE: str = "es_CL"

    # Auto-pay
    AUTOPAY_MAX_ATTEMPTS: int = 3
    AUTOPAY_CUSTOMER_DELAY_SECONDS: float = 0.5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" or "json"

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
