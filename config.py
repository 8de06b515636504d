# config.py
# Simple centralized configuration values, overridable from the environment / .env
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_FILE = os.getenv("DATABASE_FILE", "matchmaking.db")
STORAGE_TIMEOUT = float(os.getenv("STORAGE_TIMEOUT", "5.0"))  # seconds per persistence call

# Default matchmaking parameters
MAX_MATCH_RESULTS = int(os.getenv("MAX_MATCH_RESULTS", "5"))  # how many ranked candidates to return
EXCLUDE_MATCHED = os.getenv("EXCLUDE_MATCHED", "false").lower() in ("1", "true", "yes")

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "5000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
