class AuthError(Exception):
    """
    Base class for authentication failures that map to a JSON error response.
    """
    status_code = 400
    message = "Authentication failed"

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.extra)
        return body


class InvalidCredentials(AuthError):
    # same message for unknown username and wrong password
    status_code = 401
    message = "Invalid credentials"


class InvalidOrExpiredChallenge(AuthError):
    status_code = 400
    message = "Invalid or expired code"

    def __init__(self, reason: str):
        super().__init__()
        # kept for audit/logging only, never serialized
        self.reason = reason


class IncorrectCode(AuthError):
    status_code = 400
    message = "Incorrect code"

    def __init__(self, attempts_remaining: int):
        super().__init__(attemptsRemaining=max(attempts_remaining, 0))
        self.attempts_remaining = max(attempts_remaining, 0)


class NotificationDispatchFailure(AuthError):
    status_code = 502
    message = "Could not send verification email"

    def __init__(self, detail: str = None, **extra):
        super().__init__(**extra)
        self.detail = detail


class TooManyRequests(AuthError):
    status_code = 429
    message = "Too many requests. Slow down."

    def __init__(self, message=None, retry_after: int = None):
        if retry_after is not None:
            super().__init__(message, retry_after_seconds=retry_after)
        else:
            super().__init__(message)
        self.retry_after = retry_after
