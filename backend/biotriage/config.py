"""
BioTriage - Configuration Management

Centralized configuration using Pydantic Settings.
All environment-specific values are loaded from environment variables.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json: bool = False  # JSON log lines (production) vs human-readable

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000

    # --- Acoustic Feature Extraction ---
    # "numpy" = autocorrelation pitch + FFT spectrum (default, no extra dependencies)
    # "librosa" = librosa primitives (requires librosa)
    feature_backend: str = "numpy"
    fft_size_cap: int = 2048     # Largest transform window in samples
    band_count: int = 8          # Number of spectral bands in the feature vector
    pitch_min_hz: float = 80.0   # Lower bound of the voice pitch search
    pitch_max_hz: float = 400.0  # Upper bound of the voice pitch search

    # --- Audio Input ---
    default_sample_rate: int = 16000
    # Longer recordings are truncated before extraction to bound latency
    max_audio_seconds: float = 30.0

    # --- Symptom Scoring ---
    # "standard" = questionnaire weights (breathing +30, bands 70/50/30)
    # "strict" = stricter weights (breathing +50, bands 70/40/25)
    symptom_ruleset: str = "standard"

    # --- Privacy ---
    anonymize_logs: bool = True  # If True, logs contain minimal identifying info

    # --- Security ---
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Use dependency injection in routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()


# Convenience export
settings = get_settings()
