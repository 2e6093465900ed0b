"""
Constants Module - Centralized configuration values
===================================================

PURPOSE: Single source of truth for GameTime site constants
PATTERN: Modular constants organized by category
SCOPE: URLs, court mapping, selectors and page wording used by the engine
"""
from tracking import t

# Remote authority
GAMETIME_BASE_URL = "https://jct.gametime.net"
GAMETIME_TIMEZONE = "America/New_York"
LOGIN_PATH = "/auth"
BOOKING_FORM_PATH_TEMPLATE = "/scheduling/index/book/sport/{sport}/court/{court_id}/date/{date}/time/{time}"
BOOKING_SAVE_PATH = "/scheduling/index/save?errs="
DEFAULT_SPORT_ID = "1"

# Booking window: slots open 6 days before the target date at 08:00 local time
BOOKING_WINDOW_DAYS = 6
BOOKING_WINDOW_OPEN_HOUR = 8

# Court Configuration (display number -> GameTime court id)
COURT_ID_MAPPING = {
    "1": "50",
    "2": "51",
    "3": "52",
    "4": "53",
    "5": "54",
    "6": "55",
}
ALL_COURT_NUMBERS = list(COURT_ID_MAPPING.keys())


def court_number_to_id(number: str) -> str:
    """Convert a human-readable court number to the GameTime court id."""
    t('infrastructure.constants.court_number_to_id')
    key = str(number).strip()
    if key not in COURT_ID_MAPPING:
        raise KeyError(f"Court {number} not configured")
    return COURT_ID_MAPPING[key]


# Page address fragments used by the page classifier
BOOK_ERROR_URL_PATTERN = "/bookerror"
GENERIC_ERROR_URL_PATTERN = "/error"
BOOKING_FORM_URL_PATTERN = "/book/"
CONFIRMATION_URL_PATTERN = "/confirmation"
CONFIRMATION_ID_PATTERN = r"id/(\d+)"

# Page wording (regular expressions, matched case-insensitively)
TOO_EARLY_PATTERNS = [r"\bwait\b", r"not (?:yet )?open"]
CONTENDED_PATTERNS = [r"another member", r"currently booking"]
SERVER_ERROR_PATTERNS = [
    r"internal server error",
    r"service unavailable",
    r"bad gateway",
    r"gateway timeout",
    r"\b50[0234]\b",
]

# Form selectors
FORM_FIELD_SELECTORS = {
    'temp': 'input[name="temp"]',
    'user_id': 'input[name="players[1][user_id]"]',
    'user_name': 'input[name="players[1][name]"]',
}
LOGIN_USERNAME_SELECTOR = 'input[type="text"]'
LOGIN_PASSWORD_SELECTOR = 'input[type="password"]'
LOGIN_BUTTON_SELECTORS = [
    'input[type="submit"]',
    'button[type="submit"]',
    'button.btn-primary',
    'form button',
]
PAGE_BODY_SELECTOR = 'body'

# Challenge token
RECAPTCHA_SITE_KEY = "6LeW9NsUAAAAAC9KRF2JvdLtGMSds7hrBdxuOnLH"
RECAPTCHA_ACTION = "homepage"

# Booking form values
DEFAULT_DURATION_MINUTES = 60
FORM_DEFAULT_DURATION = 30
DEFAULT_RESERVATION_TYPE = "13"
DEFAULT_INVITE_FOR = "Singles"
DEFAULT_GUEST_NAME = "Guest Player"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36"
)

# Timing
LATENCY_PROBE_COUNT = 3
LATENCY_FALLBACK_MS = 150
LATENCY_PROBE_SPACING_SECONDS = 0.1
CLOCK_SYNC_MAX_AGE_SECONDS = 600
DEFAULT_MAX_RETRIES = 2


class BrowserTimeouts:
    """Centralized timeout configuration for different browser operations (ms)"""
    LOGIN_NAVIGATION = 30000
    FORM_NAVIGATION = 30000
    FORM_READY = 10000          # Wait for the hidden temp field
    TEXT_READ = 2000            # Read error page wording
    CHALLENGE_READY = 10000     # Wait for window.grecaptcha
    CHALLENGE_SETTLE = 1000     # Pause before executing the challenge
    HTTP_WRITE = 15000          # Final booking POST
    HTTP_PROBE = 5000           # Latency / clock probes
