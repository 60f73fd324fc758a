from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

# Base URL (Flex API, airport status v2)
FLIGHTSTATS_BASE_URL = os.getenv(
    "FLIGHTSTATS_BASE_URL",
    "https://api.flightstats.com/flex/flightstatus/rest/v2/json",
)

# API credentials
FLIGHTSTATS_APP_ID: str = os.getenv("FLIGHTSTATS_APP_ID", "")
FLIGHTSTATS_APP_KEY: str = os.getenv("FLIGHTSTATS_APP_KEY", "")

# HTTP timeout for a single window call, seconds
HTTP_TIMEOUT_S: float = float(os.getenv("FLIGHTSTATS_HTTP_TIMEOUT", "30"))

# Rate limiting knobs (shared by all windows of all fan-outs)
FLIGHTSTATS_MAX_RPS: float = float(os.getenv("FLIGHTSTATS_MAX_RPS", "10"))
FLIGHTSTATS_BURST: int = int(os.getenv("FLIGHTSTATS_BURST", "4"))

# The airport status endpoint refuses numHours above this
MAX_WINDOW_HOURS = 6

# Rendezvous store
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RENDEZVOUS_TTL_S: int = int(os.getenv("RENDEZVOUS_TTL", "120"))
KEY_PREFIX = "fs"
STORE_RETRY_ATTEMPTS: int = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))
