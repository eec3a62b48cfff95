"""Environment-driven configuration for the relay service."""

from __future__ import annotations

import logging
import os
from typing import Optional


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = int(raw)
    return value if value > 0 else None


# ------------------------------------------------------------------------------
# Server
# ------------------------------------------------------------------------------
HOST = os.getenv("PAIRSIGNAL_HOST", "0.0.0.0")
PORT = int(os.getenv("PAIRSIGNAL_PORT", "5000"))
ENVIRONMENT = os.getenv("PAIRSIGNAL_ENV", "development")
CLIENT_URL = os.getenv("PAIRSIGNAL_CLIENT_URL", "https://localhost:3000")
LOG_LEVEL = os.getenv("PAIRSIGNAL_LOG_LEVEL", "info").lower()

API_NAME = "pairsignal"
API_VERSION = "1.0.0"

# ------------------------------------------------------------------------------
# Auth
# ------------------------------------------------------------------------------
DEV_SECRET = "dev-secret-change-in-production"
SECRET = os.getenv("PAIRSIGNAL_SECRET", DEV_SECRET)
TOKEN_TTL_S = int(os.getenv("PAIRSIGNAL_TOKEN_TTL_S", str(7 * 24 * 60 * 60)))

# ------------------------------------------------------------------------------
# Presence
# ------------------------------------------------------------------------------
ONLINE_WINDOW_S = float(os.getenv("PAIRSIGNAL_ONLINE_WINDOW_S", "300"))
TYPING_WINDOW_S = float(os.getenv("PAIRSIGNAL_TYPING_WINDOW_S", "5"))

# ------------------------------------------------------------------------------
# Signaling
# ------------------------------------------------------------------------------
# Unset means candidate queues grow until drained.
MAX_CANDIDATES = _optional_int("PAIRSIGNAL_MAX_CANDIDATES")

# ------------------------------------------------------------------------------
# Push
# ------------------------------------------------------------------------------
PUSH_TIMEOUT_S = float(os.getenv("PAIRSIGNAL_PUSH_TIMEOUT_S", "10"))
PUSH_TTL_S = int(os.getenv("PAIRSIGNAL_PUSH_TTL_S", "86400"))

# Unset private key disables delivery.
VAPID_PRIVATE_KEY = os.getenv("PAIRSIGNAL_VAPID_PRIVATE_KEY", "")
VAPID_PUBLIC_KEY = os.getenv("PAIRSIGNAL_VAPID_PUBLIC_KEY", "")
VAPID_EMAIL = os.getenv("PAIRSIGNAL_VAPID_EMAIL", "mailto:admin@pairsignal.local")


def setup_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
