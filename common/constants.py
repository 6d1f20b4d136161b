"""
Application-wide constants for the Family Connect backend.

This module contains all shared constants used across the application.
"""

import os

# ========= Service Configuration =========
# Service configuration: service_name -> (module_path, port)
SERVICES = {
    "family_connect": ("services.family_connect.main", 5000),
}

# ========= Domain Values =========
USER_ROLES = ("member", "caregiver")
STATUS_VALUES = ("ok", "emergency")
MOOD_VALUES = ("good", "okay", "not_great")

DEFAULT_ROLE = "member"
DEFAULT_STATUS = "ok"
DEFAULT_MOOD = "good"

# Number of check-ins returned when no ?limit= is given
DEFAULT_CHECKIN_LIMIT = 10

# Trailing window for /api/location/history (24 hours in seconds)
LOCATION_HISTORY_WINDOW = 24 * 3600

# ========= Redis Configuration =========
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
# Note: REDIS_PASSWORD should be read from env in redis_client, not here (security)

# ========= Session Management Configuration =========
SESSION_COOKIE_NAME = "family_connect.sid"

# Session key prefixes for Redis
SESSION_KEY_PREFIX = "session:"
USER_SESSIONS_KEY_PREFIX = "user_sessions:"

# Session TTL (1 week in seconds), also used as the cookie max-age
SESSION_TTL = 7 * 24 * 3600

# Sliding TTL refresh interval (update last_seen_at every N seconds)
SESSION_SLIDING_REFRESH_INTERVAL = 600  # 10 minutes

# Absolute max session lifetime (30 days) - stored in session payload
SESSION_ABSOLUTE_MAX_TTL = 30 * 24 * 3600
