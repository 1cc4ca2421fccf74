#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from pathlib import Path

PACKAGE_NAME = "cowork"
ENDPOINT_CONFIGS_ROOT = f"{PACKAGE_NAME}.configs.endpoints"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "cowork"
DEFAULT_VENUE_TIMEZONE = "America/Los_Angeles"
DEFAULT_PORTAL_URL = "https://moxsf.com"
# Airtable returns at most 100 records per page
DEFAULT_PAGE_SIZE = 100
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0
# one year of weekly events
MAX_SERIES_OCCURRENCES = 52
PERSON_NAME_CACHE_TTL_SECONDS = 60 * 60
UNKNOWN_PERSON_NAME = "Unknown"
OTHER_FLOOR = "Other"
