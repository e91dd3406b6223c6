import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Reservation rules
MAX_DAILY_CAPACITY = int(os.getenv("MAX_DAILY_CAPACITY", "60"))
MAX_CONSECUTIVE_DAYS = int(os.getenv("MAX_CONSECUTIVE_DAYS", "3"))
MAX_ADDITIONAL_OCCUPANTS = int(os.getenv("MAX_ADDITIONAL_OCCUPANTS", "3"))
AVAILABILITY_MAX_RANGE_DAYS = int(os.getenv("AVAILABILITY_MAX_RANGE_DAYS", "92"))

# Transfers
TRANSFER_TTL_HOURS = int(os.getenv("TRANSFER_TTL_HOURS", "24"))

# Rate limits (fixed windows, milliseconds)
RESERVATION_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RESERVATION_RATE_LIMIT_MAX_REQUESTS", "5"))
RESERVATION_RATE_LIMIT_WINDOW_MS = int(os.getenv("RESERVATION_RATE_LIMIT_WINDOW_MS", "60000"))

RESERVATION_CANCEL_RATE_LIMIT_MAX_REQUESTS = int(
    os.getenv("RESERVATION_CANCEL_RATE_LIMIT_MAX_REQUESTS", "10")
)
RESERVATION_CANCEL_RATE_LIMIT_WINDOW_MS = int(
    os.getenv("RESERVATION_CANCEL_RATE_LIMIT_WINDOW_MS", "60000")
)

TRANSFER_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("TRANSFER_RATE_LIMIT_MAX_REQUESTS", "10"))
TRANSFER_RATE_LIMIT_WINDOW_MS = int(os.getenv("TRANSFER_RATE_LIMIT_WINDOW_MS", "60000"))

RATE_LIMIT_CLEANUP_INTERVAL_SECONDS = float(os.getenv("RATE_LIMIT_CLEANUP_INTERVAL_SECONDS", "60"))
