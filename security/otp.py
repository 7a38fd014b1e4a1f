import enum
import secrets
from datetime import datetime, timedelta

from flask import current_app

from models import db
from models.login_otp import LoginOTP
from security.hashing import sha256_hex, hashes_equal


class OtpResult(enum.Enum):
    SUCCESS = "success"
    INCORRECT_CODE = "incorrect_code"
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    NOT_FOUND = "not_found"


def _generate_code(length: int) -> str:
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def issue_challenge(workshop_id, ip=None, user_agent=None, resend_count=0):
    """
    Creates a LoginOTP row for a workshop and returns (row, otp_token, raw_code).

    Only hashes of the token and the code are stored. The raw code goes to
    the notification channel and nowhere else. The row is added to the
    session but not committed.
    """
    length = current_app.config.get("OTP_LENGTH", 6)
    ttl = current_app.config.get("OTP_TTL_SECONDS", 600)
    max_attempts = current_app.config.get("OTP_MAX_ATTEMPTS", 5)

    raw_code = _generate_code(length)
    otp_token = secrets.token_urlsafe(32)
    now = datetime.utcnow()

    row = LoginOTP(
        workshop_id=str(workshop_id),
        token_hash=sha256_hex(otp_token),
        code_hash=sha256_hex(raw_code),
        created_at=now,
        expires_at=now + timedelta(seconds=ttl),
        attempts=0,
        max_attempts=max_attempts,
        resend_count=resend_count,
        ip=ip,
        user_agent=(user_agent or "")[:255] or None,
    )
    db.session.add(row)
    return row, otp_token, raw_code


def find_challenge(otp_token: str):
    if not otp_token or not isinstance(otp_token, str):
        return None
    return LoginOTP.query.filter_by(token_hash=sha256_hex(otp_token)).first()


def code_matches(row: LoginOTP, code: str) -> bool:
    if not isinstance(code, str):
        return False
    return hashes_equal(sha256_hex(code.strip()), row.code_hash)


def challenge_state(row, now: datetime = None):
    """
    Returns the OtpResult that closes this challenge, or None while it can
    still be answered.
    """
    if row is None:
        return OtpResult.NOT_FOUND

    now = now or datetime.utcnow()
    if now >= row.expires_at:
        return OtpResult.EXPIRED
    if row.attempts >= row.max_attempts:
        return OtpResult.ATTEMPTS_EXHAUSTED
    return None


def verify_challenge(row, code: str, now: datetime = None) -> OtpResult:
    """
    Pure check of a submitted code against the record's current fields.
    Does not touch the attempt counter.
    """
    closed = challenge_state(row, now)
    if closed is not None:
        return closed
    if not code_matches(row, code):
        return OtpResult.INCORRECT_CODE
    return OtpResult.SUCCESS


def consume_attempt(row: LoginOTP, now: datetime = None) -> bool:
    """
    Atomically spends one attempt on a challenge.

    Returns False when the challenge expired or ran out of attempts in the
    meantime (another request took the last slot). The update is part of the
    caller's transaction.
    """
    now = now or datetime.utcnow()
    updated = (
        LoginOTP.query
        .filter(
            LoginOTP.id == row.id,
            LoginOTP.attempts < LoginOTP.max_attempts,
            LoginOTP.expires_at > now,
        )
        .update({LoginOTP.attempts: LoginOTP.attempts + 1}, synchronize_session=False)
    )
    return updated == 1


def attempts_used(row_id) -> int:
    """
    Reads the attempt counter inside the current transaction, so it includes
    this request's increment and any committed by concurrent requests.
    """
    return (
        db.session.query(LoginOTP.attempts)
        .filter(LoginOTP.id == row_id)
        .scalar()
    )


def purge_expired(now: datetime = None) -> int:
    now = now or datetime.utcnow()
    count = (
        LoginOTP.query
        .filter(LoginOTP.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return count
