"""
Configuration module for loading environment variables
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Session Configuration
    SESSION_BACKEND: str = os.getenv("SESSION_BACKEND", "memory")  # memory or redis
    SESSION_COOKIE_SECURE: bool = _env_flag("SESSION_COOKIE_SECURE")
    # - "sliding": TTL is extended on activity
    # - "absolute": Session expires after fixed time no matter what
    SESSION_TTL_STRATEGY: str = os.getenv("SESSION_TTL_STRATEGY", "sliding")

    # Sample users / family graph loaded at startup
    SEED_SAMPLE_DATA: bool = _env_flag("SEED_SAMPLE_DATA", "true")
    # Enables GET /api/simulate-checkin
    ENABLE_DEMO_ENDPOINTS: bool = _env_flag("ENABLE_DEMO_ENDPOINTS")

    CORS_ALLOW_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Client-side settings
    FAMILY_CONNECT_URL: str = os.getenv("FAMILY_CONNECT_URL", "http://127.0.0.1:5000")
    NOMINATIM_URL: str = os.getenv(
        "NOMINATIM_URL", "https://nominatim.openstreetmap.org"
    )
    NOMINATIM_USER_AGENT: Optional[str] = os.getenv(
        "NOMINATIM_USER_AGENT", "FamilyConnect/1.0"
    )

    @classmethod
    def uses_redis_sessions(cls) -> bool:
        """Check if sessions should be stored in Redis"""
        return cls.SESSION_BACKEND.lower() == "redis"


config = Config()
