from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Snooze+"
    ENVIRONMENT: str = "development"  # "development" or "production"

    DATABASE_URL: str = "sqlite:///./snoozeplus.db"

    # Intercom REST API
    INTERCOM_URL: str = "https://api.intercom.io"
    INTERCOM_VERSION: str = "2.11"

    # Hex-encoded 32 byte master key for access tokens and message bodies
    ENCRYPTION_KEY: str = ""

    # Intercom app client secret; signs webhook (sha1) and canvas (sha256) requests
    INTERCOM_CLIENT_SECRET: str = ""

    # X-Admin-Key for operator endpoints (disabled when empty)
    ADMIN_API_KEY: str = ""

    # Better Stack heartbeat monitor (skipped when empty)
    BETTERSTACK_HEARTBEAT_URL: str = ""

    # Retry policy for outbound calls (timeouts in milliseconds)
    RETRY_ATTEMPTS: int = 3
    RETRY_FACTOR: float = 2.0
    RETRY_MIN_TIMEOUT: int = 1000
    RETRY_MAX_TIMEOUT: int = 5000
    RETRY_RANDOMIZE: bool = False

    # Circuit breaker guarding the Intercom API (timeouts in milliseconds)
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_CALL_TIMEOUT: int = 10000
    CIRCUIT_RESET_TIMEOUT: int = 60000

    # Set to False on web replicas that must not deliver messages
    RUN_SCHEDULER: bool = True

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
