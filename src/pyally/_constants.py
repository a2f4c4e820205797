"""Internal constants shared across the library."""

TOKEN_URL = "https://api.danfoss.com/oauth2/token"
BASE_URL = "https://api.danfoss.com/ally"
USER_AGENT = "pyally/1.0"
REQUEST_TIMEOUT_S = 15.0

# ------------------------------------------------------------------
# Token lifecycle
# ------------------------------------------------------------------

TOKEN_SAFETY_MARGIN_S = 60.0
DEFAULT_TOKEN_LIFETIME_S = 1800.0

# ------------------------------------------------------------------
# Reconciliation timing
# ------------------------------------------------------------------

HOLD_WINDOW_S = 60.0
LAG_WINDOW_S = 15.0
ANTI_RACE_PAUSE_S = 5.0
SOFT_REFRESH_DELAY_S = 1.5

POLL_INTERVAL_MIN_S = 30
POLL_INTERVAL_MAX_S = 24 * 3600
POLL_INTERVAL_DEFAULT_S = 60

WRITE_QUEUE_SIZE = 32

# Absolute tolerance for temperature-like values, in degrees.
TEMPERATURE_TOLERANCE = 0.05

# State key layout: ``devices.<device_id>.<code>``
DEVICE_KEY_PREFIX = "devices"
