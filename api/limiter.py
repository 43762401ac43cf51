"""
api/limiter.py -- The one slowapi Limiter shared by the app and its routes.

api/main.py mounts it (app.state.limiter + SlowAPIASGIMiddleware) and
api/routes/v1/auth.py decorates POST /auth/login with it. Both must see the
same instance: counters live on the Limiter, so a second instance would
count login attempts separately and never trip.

Limits are keyed by client IP. Route limits must be plain strings: the
middleware only enforces static limits, and the login limit is read from
LOGIN_RATE_LIMIT once, when the route module is imported.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
