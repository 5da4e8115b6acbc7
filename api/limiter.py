"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and the route
modules (to apply per-route limits with @limiter.limit()).

A single shared instance keeps all routes on the same in-memory counter store.

This limiter guards the public listing endpoints only. Login attempts go
through auth.governor.AttemptGovernor instead, which decides before the
credential check and reports an exact retry-after.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
