from datetime import datetime, timedelta
from functools import wraps
from flask import current_app

from models import db
from models.ip_rate_limit import IpRateLimit
from security.errors import TooManyRequests
from utils.audit import client_ip, log_event


def check_and_increment(scope: str, max_requests: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Simple fixed window per IP and scope.
    """
    ip = client_ip() or "unknown"
    now = datetime.utcnow()

    window_seconds = current_app.config.get("RATE_LIMIT_WINDOW_SECONDS", 60)

    row = IpRateLimit.query.filter_by(ip=ip, scope=scope).first()
    if not row:
        row = IpRateLimit(ip=ip, scope=scope, window_start=now, count=0)
        db.session.add(row)

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0


def rate_limited(scope: str, limit_key: str, default_limit: int = 15):
    """
    Usage: @rate_limited("login", "LOGIN_RATE_MAX_REQUESTS")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            max_requests = current_app.config.get(limit_key, default_limit)
            allowed, retry_after = check_and_increment(scope, max_requests)
            if not allowed:
                log_event("RATE_LIMIT", metadata={"scope": scope, "retry_after": retry_after})
                raise TooManyRequests(retry_after=retry_after)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
