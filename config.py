import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DATA_DIR = Path(os.environ.get("DATA_DIR", "data"))

# Unset falls back to a SQLite file; set-but-empty is a mistake, fail fast.
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite+aiosqlite:///{DATA_DIR / 'bookings.sqlite'}"
)
if not DATABASE_URL:
    raise ValueError("DATABASE_URL is empty. Please check your .env file.")

HOST = os.environ.get("HOST", "127.0.0.1")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
