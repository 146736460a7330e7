"""
Shared Flask extensions, created unbound and attached in create_app().
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["200 per hour"])

LOGIN_LIMIT = "5 per 15 minutes"
CLAIM_LIMIT = "30 per minute"
