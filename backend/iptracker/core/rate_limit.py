# iptracker/core/rate_limit.py

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

# Rate limit constants
REPORT_RATE_LIMIT = os.getenv("REPORT_RATE_LIMIT", "30/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() not in ("0", "false", "no")

# Keyed on the reporting host's address
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
