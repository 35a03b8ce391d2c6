"""
SuperStock - Configuration Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )
    
    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "SuperStock"
    APP_ENV: str = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    
    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    
    # =========================
    # Data Providers - Twelve Data
    # =========================
    TWELVE_DATA_API_KEY: str = ""
    TWELVE_DATA_BASE_URL: str = "https://api.twelvedata.com"
    
    # =========================
    # Data Providers - Yahoo Finance
    # =========================
    YFINANCE_ENABLED: bool = True
    YFINANCE_REQUESTS_PER_MINUTE: int = 30
    
    # Exchange suffix appended for outbound vendor calls ("" for none)
    MARKET_SUFFIX: str = ".NS"
    
    # =========================
    # Transport
    # =========================
    REQUEST_TIMEOUT_SECONDS: int = 30
    MAX_RETRY_ATTEMPTS: int = 3
    
    # =========================
    # Orchestration
    # =========================
    ENABLE_FALLBACK: bool = True
    CACHE_DURATION_MINUTES: int = 5
    CACHE_MAX_ENTRIES: int = 10000
    
    # =========================
    # Rate Limit Settings
    # =========================
    MAX_REQUESTS_PER_MINUTE: int = 8
    ENABLE_THROTTLING: bool = True
    
    # =========================
    # Circuit Breaker
    # =========================
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_TIMEOUT_SECONDS: int = 60
    
    @field_validator(
        "REQUEST_TIMEOUT_SECONDS",
        "MAX_RETRY_ATTEMPTS",
        "MAX_REQUESTS_PER_MINUTE",
        "CIRCUIT_BREAKER_FAILURE_THRESHOLD",
        "YFINANCE_REQUESTS_PER_MINUTE",
        "CACHE_MAX_ENTRIES",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v
    
    @field_validator("CACHE_DURATION_MINUTES", "CIRCUIT_BREAKER_TIMEOUT_SECONDS")
    @classmethod
    def must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v
    
    @field_validator("MARKET_SUFFIX", mode="before")
    @classmethod
    def normalize_suffix(cls, v):
        if v is None:
            return ""
        v = str(v).strip().upper()
        if v and not v.startswith("."):
            v = f".{v}"
        return v
    
    # =========================
    # Logging
    # =========================
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True


# Create global settings instance
settings = Settings()
