# config.py
import os
from dotenv import load_dotenv
load_dotenv()

import logging
from logging_utils import configure_logging

from flight_status.config import (
    FLIGHTSTATS_APP_ID,
    FLIGHTSTATS_APP_KEY,
    HTTP_TIMEOUT_S,
    REDIS_URL,
    RENDEZVOUS_TTL_S,
)

configure_logging()
logger = logging.getLogger("flightstatus.config")

if not (FLIGHTSTATS_APP_ID and FLIGHTSTATS_APP_KEY):
    logger.warning("FLIGHTSTATS_APP_ID/FLIGHTSTATS_APP_KEY missing - vendor calls will fail")

SERVER_HOST = os.getenv("SERVER_HOST", "127.0.0.1")
SERVER_PORT = int(os.getenv("SERVER_PORT", "8888"))

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:8888").split(",")
    if o.strip()
]

logger.info(
    f"Config: redis={REDIS_URL}, ttl={RENDEZVOUS_TTL_S}s, "
    f"vendor_timeout={HTTP_TIMEOUT_S}s, listen={SERVER_HOST}:{SERVER_PORT}"
)
