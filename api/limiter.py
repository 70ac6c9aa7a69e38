"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply the login limit with @limiter.limit()).

One shared instance means one counter store. Counters are keyed by the
socket peer address, never by X-Forwarded-For, so a client cannot reset its
own counter by rotating a header. RATE_LIMIT_STORAGE_URI defaults to
memory://, which is per-process; point it at redis:// when running more
than one worker.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)
