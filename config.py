"""
Defaults for the referral model. Each value can be overridden from the
environment; values are read once at import.
"""

import os

INITIAL_REFERRERS: int = int(os.environ.get("REFERRAL_INITIAL_REFERRERS", "100"))
CAPACITY: int = int(os.environ.get("REFERRAL_CAPACITY", "10"))  # lifetime successes per referrer
MAX_DAYS: int = int(os.environ.get("REFERRAL_MAX_DAYS", "100000"))
MAX_BONUS: int = int(os.environ.get("REFERRAL_MAX_BONUS", "10000000"))
MAX_COLLISION_SUFFIX: int = int(os.environ.get("REFERRAL_MAX_COLLISION_SUFFIX", "1000"))
LOG_LEVEL: str = os.environ.get("REFERRAL_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
