"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Persisted availability configuration
SCHEDULING_PARAMETERS_URI = "https://medplum.com/fhir/StructureDefinition/SchedulingParameters"

# Canonical day ordering used whenever windows are serialized or grouped
ORDERED_DAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

DAY_LABELS = {
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
    "sun": "Sunday",
}

MINUTES_PER_DAY = 24 * 60

# Default window for an enabled day with nothing configured (09:00-17:00)
DEFAULT_WINDOW_START_MINUTE = 9 * 60
DEFAULT_WINDOW_DURATION_MINUTES = 8 * 60

# Window offered when a second window is added to a day (13:00-17:00)
ADDED_WINDOW_START_MINUTE = 13 * 60
ADDED_WINDOW_DURATION_MINUTES = 4 * 60

# Defaults applied when a persisted entry omits a field
DEFAULT_DURATION_VALUE = 30
DEFAULT_DURATION_UNIT = "min"
DEFAULT_AVAILABILITY_DURATION_HOURS = 8
DEFAULT_AVAILABILITY_TIME_OF_DAY = "09:00:00"

# Calendar interactions
DEFAULT_APPOINTMENT_MINUTES = 60  # Single click on the calendar
ALL_DAY_BLOCK_MIN_HOURS = 23  # Blocks at least this long render in the all-day row

# Availability search
SEARCH_FALLBACK_DAYS = 7  # Search window when the visible range is entirely too soon

# Resource store page sizes
SLOT_FETCH_LIMIT = 1000
APPOINTMENT_FETCH_LIMIT = 1000
BLOCK_FETCH_LIMIT = 200
