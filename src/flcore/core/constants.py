"""Library-wide constants.

This module defines constants used throughout the library
to avoid magic numbers and ensure consistency.
"""

# Query defaults
DEFAULT_QUERY_LIMIT = 20
DEFAULT_QUERY_ORDER = "updated_at DESC"

# Global object identifiers
GLOBAL_ID_SCHEME = "gid"
SIGNED_ID_PURPOSE = "default"
DEFAULT_SIGNED_ID_EXPIRE_MINUTES = 60 * 24 * 30

# Secret key requirements
MIN_SECRET_KEY_LENGTH = 32
DEFAULT_INSECURE_SECRET = "change-me-in-production"

# CAPTCHA
CAPTCHA_KEY = "captchaResponse"
DEFAULT_CAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
DEFAULT_CAPTCHA_TIMEOUT = 5.0

# String field lengths
MAX_NAME_LENGTH = 255
MAX_FINGERPRINT_LENGTH = 255
MAX_TITLE_LENGTH = 100

# Number of characters of the contents used for a generated title
TITLE_EXTRACT_LENGTH = 40
TITLE_TAIL = "..."

# Actor groups
PUBLIC_GROUP_NAME = "public"

# Lists
MAX_LIST_TITLE_LENGTH = 200
LIST_TITLE_EXTRACT_LENGTH = 60
MAX_LIST_ITEM_NAME_LENGTH = 200
LIST_TITLE_DATE_FORMAT = "Created %m/%d/%Y"
