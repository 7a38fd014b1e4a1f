"""
Login state machine.

    AwaitingCredentials -> Authenticated            (trusted device cookie)
    AwaitingCredentials -> AwaitingOtp -> Authenticated

Password check first, then the trusted-device short-circuit, otherwise an
emailed one-time code that must be verified before a token is issued.
"""
import logging
from datetime import datetime

from flask import current_app

from models import db
from models.workshop import Workshop
from security import otp, trusted_devices
from security.errors import (
    IncorrectCode,
    InvalidCredentials,
    InvalidOrExpiredChallenge,
    NotificationDispatchFailure,
    TooManyRequests,
)
from security.otp import OtpResult
from security.password import verify_workshop_password
from security.tokens import issue_token
from utils.audit import log_event
from utils.emailer import send_otp_email

logger = logging.getLogger(__name__)


def _session_payload(workshop: Workshop, token: str) -> dict:
    return {
        "token": token,
        "workshopName": workshop.workshop_name,
        "subdomain": workshop.subdomain,
    }


def _challenge_payload(otp_token: str) -> dict:
    return {"needOtp": True, "otpToken": otp_token}


def _dispatch_code(workshop: Workshop, code: str) -> None:
    try:
        send_otp_email(workshop.email, code, workshop.workshop_name)
    except NotificationDispatchFailure as exc:
        # the challenge is already committed; operators need to see undelivered codes
        logger.error("OTP delivery failed for workshop %s: %s", workshop.id, exc.detail)
        log_event("OTP_DISPATCH_FAIL", workshop_id=workshop.id, metadata={"error": exc.detail})
        raise


def login(username, password, device_token=None, ip=None, user_agent=None) -> dict:
    if not isinstance(username, str) or not isinstance(password, str):
        raise InvalidCredentials()
    username = username.strip()
    if not username or not password:
        raise InvalidCredentials()

    workshop = Workshop.query.filter_by(username=username).first()
    if not verify_workshop_password(workshop, password):
        log_event(
            "LOGIN_FAIL",
            workshop_id=workshop.id if workshop else None,
            metadata={"username": username},
        )
        raise InvalidCredentials()

    device = trusted_devices.find_trusted(workshop.id, device_token) if device_token else None
    if device is not None:
        trusted_devices.touch_device(device)
        token = issue_token(workshop.id)
        log_event("LOGIN_TRUSTED_DEVICE", workshop_id=workshop.id, metadata={"device_id": device.id})
        return _session_payload(workshop, token)

    _row, otp_token, code = otp.issue_challenge(workshop.id, ip=ip, user_agent=user_agent)
    db.session.commit()
    log_event("OTP_ISSUED", workshop_id=workshop.id)

    try:
        _dispatch_code(workshop, code)
    except NotificationDispatchFailure:
        # login still answers needOtp; the caller can ask for a resend
        pass

    return _challenge_payload(otp_token)


def _reject(workshop_id, reason: str):
    log_event("OTP_REJECTED", workshop_id=workshop_id, metadata={"reason": reason})
    return InvalidOrExpiredChallenge(reason)


def verify_otp(otp_token, code, ip=None, user_agent=None):
    """
    Verifies a code for a pending challenge.

    Returns (payload, raw_device_token). On success the new trusted device,
    the deletion of the challenge and the token are committed together.
    """
    now = datetime.utcnow()
    row = otp.find_challenge(otp_token)

    result = otp.verify_challenge(row, code, now)
    if result in (OtpResult.NOT_FOUND, OtpResult.EXPIRED, OtpResult.ATTEMPTS_EXHAUSTED):
        raise _reject(row.workshop_id if row is not None else None, result.value)

    # a concurrent request may delete the row before we are done with it
    row_id = row.id
    workshop_id = row.workshop_id
    max_attempts = row.max_attempts

    # the attempt is spent before the outcome counts
    if not otp.consume_attempt(row, now):
        db.session.rollback()
        raise _reject(workshop_id, OtpResult.ATTEMPTS_EXHAUSTED.value)

    if result is OtpResult.INCORRECT_CODE:
        remaining = max_attempts - otp.attempts_used(row_id)
        db.session.commit()
        log_event("OTP_FAIL", workshop_id=workshop_id, metadata={"attempts_remaining": remaining})
        raise IncorrectCode(remaining)

    workshop = db.session.get(Workshop, workshop_id)
    try:
        raw_device_token = trusted_devices.register_device(workshop.id, user_agent=user_agent, ip_address=ip)
        db.session.delete(row)
        token = issue_token(workshop.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log_event("OTP_VERIFIED", workshop_id=workshop.id)
    return _session_payload(workshop, token), raw_device_token


def resend_otp(otp_token, ip=None, user_agent=None) -> dict:
    """
    Replaces a live challenge with a fresh one and emails the new code.

    A password login may resend at most OTP_MAX_RESENDS times. If the email
    cannot be sent, NotificationDispatchFailure carries the new otpToken so
    the client can retry against the challenge that now exists.
    """
    row = otp.find_challenge(otp_token)
    closed = otp.challenge_state(row)
    if closed is not None:
        raise _reject(row.workshop_id if row is not None else None, closed.value)

    max_resends = current_app.config.get("OTP_MAX_RESENDS", 3)
    if row.resend_count >= max_resends:
        log_event("OTP_RESEND_LIMIT", workshop_id=row.workshop_id, metadata={"resend_count": row.resend_count})
        raise TooManyRequests("Too many code requests. Log in again.")

    workshop = db.session.get(Workshop, row.workshop_id)
    resend_count = row.resend_count + 1
    db.session.delete(row)
    _new_row, new_token, code = otp.issue_challenge(
        workshop.id, ip=ip, user_agent=user_agent, resend_count=resend_count
    )
    db.session.commit()
    log_event("OTP_RESENT", workshop_id=workshop.id, metadata={"resend_count": resend_count})

    try:
        _dispatch_code(workshop, code)
    except NotificationDispatchFailure as exc:
        raise NotificationDispatchFailure(exc.detail, otpToken=new_token) from exc
    return _challenge_payload(new_token)
