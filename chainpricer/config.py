"""
Global configuration for the option chain pipeline.

Keeps all magic numbers in one place. Override via CLI args in main.py,
via environment variables (a local .env file is picked up too), or by
editing this file directly for persistent changes.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


# ── paths ────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = Path(os.getenv("CHAINPRICER_DB_PATH", str(DATA_DIR / "stockdata.db")))
LOG_DIR = Path(os.getenv("CHAINPRICER_LOG_DIR", str(PROJECT_ROOT / "logs")))


# ── market parameters ────────────────────────────────────────────────────
DEFAULT_TICKER = "SPY"
RISK_FREE_RATE = 0.035          # annualized, continuous compounding
DAYS_PER_YEAR = 365
MIN_TICK = 0.01                 # floor for displayed premiums
NEAR_EXPIRY_T = 1e-5            # below this T (years) price at intrinsic


# ── volatility ───────────────────────────────────────────────────────────
VOL_WINDOW = 30                 # trailing daily returns used for HV
DEFAULT_VOLATILITY = 0.30       # fallback when history is too short
MIN_VOLATILITY = 0.10           # clamp band applied before pricing
MAX_VOLATILITY = 0.80
IV_INITIAL_GUESS = 0.3
IV_MAX_ITER = 100
IV_PRECISION = 1e-5
IV_FLOOR = 0.001


# ── ladders ──────────────────────────────────────────────────────────────
STRIKE_STEP = 5.0
STRIKE_COUNT = 10
DEFAULT_EXPIRIES = (0, 30, 60, 90, 180)   # days; 0 is the "as-of-today" slot


# ── freshness ────────────────────────────────────────────────────────────
MAX_DATA_AGE_DAYS = 7           # cached history older than this is refreshed
SERVE_STALE_ON_FAILURE = True   # keep serving cache if a refresh fails


# ── remote provider (Alpha Vantage) ─────────────────────────────────────
ALPHA_VANTAGE_URL = os.getenv("ALPHA_VANTAGE_URL", "https://www.alphavantage.co/query")
ALPHA_VANTAGE_API_KEY = os.getenv("ALPHA_VANTAGE_API_KEY", "")
PLACEHOLDER_API_KEYS = {"", "your_api_key_here", "demo_key"}
REQUEST_TIMEOUT = 10.0          # seconds per attempt
COMPACT_WINDOW_DAYS = 100       # provider's "compact" output covers ~100 bars
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0          # seconds; doubles each retry
RETRY_MULTIPLIER = 2.0
RATE_LIMIT_FACTOR = 2.0         # extra multiplier when throttled


# ── logging ──────────────────────────────────────────────────────────────
LOG_LEVEL_CONSOLE = "INFO"
LOG_LEVEL_FILE = "DEBUG"


# ── random seed ──────────────────────────────────────────────────────────
SEED = 42  # reproducibility for synthetic generation
