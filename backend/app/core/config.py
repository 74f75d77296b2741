from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import json
from pathlib import Path


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./reading_tracker.db"

    # JWT (tokens are issued by the identity provider, we only verify them)
    JWT_SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    # CORS - can be JSON string or comma-separated string
    CORS_ORIGINS: str = '["http://localhost:3000", "http://localhost:5173"]'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Goal pacing: a goal is on track while progress >= expected * tolerance
    PACE_TOLERANCE: float = 0.9

    # Recommendation scoring weights
    REC_WEIGHT_GENRE: float = 0.6
    REC_WEIGHT_LENGTH: float = 0.3
    REC_WEIGHT_POPULARITY: float = 0.1
    RECOMMENDATION_CANDIDATE_LIMIT: int = 500

    # Dashboard
    VELOCITY_WINDOW_DAYS: int = 30
    LEDGER_LOOKBACK_DAYS: int = 400
    RECENT_GOAL_DAYS: int = 30
    RECENT_BOOKS_LIMIT: int = 10
    FETCH_TIMEOUT_SECONDS: float = 5.0

    # Goal limits per subscription tier
    FREE_TIER_GOAL_LIMIT: int = 3
    PREMIUM_TIER_GOAL_LIMIT: int = 12

    model_config = SettingsConfigDict(
        # Load from backend/.env (relative to this file's parent's parent)
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.DATABASE_URL or self.DATABASE_URL.strip() == "":
            raise RuntimeError(
                "DATABASE_URL is not set. Create backend/.env with DATABASE_URL=sqlite:///./reading_tracker.db"
            )

        if not 0.0 < self.PACE_TOLERANCE <= 1.0:
            raise RuntimeError(
                f"PACE_TOLERANCE must be in (0, 1], got {self.PACE_TOLERANCE}"
            )

        weights = (self.REC_WEIGHT_GENRE, self.REC_WEIGHT_LENGTH, self.REC_WEIGHT_POPULARITY)
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise RuntimeError(
                "REC_WEIGHT_GENRE, REC_WEIGHT_LENGTH and REC_WEIGHT_POPULARITY must be "
                f"non-negative with a positive sum, got {weights}"
            )

        if self.VELOCITY_WINDOW_DAYS < 1:
            raise RuntimeError("VELOCITY_WINDOW_DAYS must be at least 1")

        if self.FETCH_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("FETCH_TIMEOUT_SECONDS must be positive")

    def get_masked_database_url(self) -> str:
        """Return DATABASE_URL with password masked for logging."""
        try:
            from urllib.parse import urlparse, urlunparse
            parsed = urlparse(self.DATABASE_URL)
            if not parsed.password:
                return self.DATABASE_URL
            masked_netloc = f"{parsed.username}:***@{parsed.hostname}"
            if parsed.port:
                masked_netloc += f":{parsed.port}"
            return urlunparse((
                parsed.scheme,
                masked_netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment
            ))
        except ValueError:
            return f"{self.DATABASE_URL.split('://')[0]}://<masked>"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS from JSON string or comma-separated string."""
        if not self.CORS_ORIGINS:
            return ["http://localhost:3000", "http://localhost:5173"]

        try:
            parsed = json.loads(self.CORS_ORIGINS)
            if isinstance(parsed, list):
                return parsed
            return [str(parsed)]
        except (json.JSONDecodeError, TypeError):
            origins = [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
            return origins if origins else ["http://localhost:3000", "http://localhost:5173"]

    def goal_limit_for(self, tier: str) -> int:
        """Maximum number of active goals allowed for a subscription tier."""
        if tier == "premium":
            return self.PREMIUM_TIER_GOAL_LIMIT
        return self.FREE_TIER_GOAL_LIMIT


settings = Settings()
