from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.workshop import Workshop
from security import login_flow
from security.password import hash_password
from security.rate_limit import rate_limited
from utils.audit import log_event, client_ip, client_user_agent
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 100


def _clean(data: dict, key: str, max_len: int):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or len(value.strip()) > max_len:
        raise ValueError(key)
    return value.strip() or None


def _registration_clash(username: str, subdomain):
    return Workshop.query.filter(
        (Workshop.username == username) | ((Workshop.subdomain == subdomain) & (Workshop.subdomain.isnot(None)))
    ).first()


def _set_device_cookie(resp, raw_token: str):
    resp.set_cookie(
        current_app.config.get("DEVICE_COOKIE_NAME", "device_token"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("DEVICE_COOKIE_SECURE", True),
        samesite="Strict",
        max_age=current_app.config.get("DEVICE_COOKIE_MAX_AGE", 365 * 24 * 60 * 60),
        path="/",
    )
    return resp


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    try:
        workshop_name = _clean(data, "workshopName", 100)
        username = _clean(data, "username", 50)
        email = _clean(data, "email", 100)
        phone = _clean(data, "phone", 20)
        subdomain = _clean(data, "subdomain", 100)
    except ValueError as exc:
        return jsonify(error=f"Invalid {exc.args[0]}"), 400
    password = data.get("password") or ""

    if not workshop_name or not username:
        return jsonify(error="workshopName and username are required"), 400
    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not isinstance(password, str) or not password:
        return jsonify(error="Password is required"), 400
    if len(password.encode("utf-8")) > 72:
        # bcrypt limit
        return jsonify(error="Password must be at most 72 bytes"), 400

    if _registration_clash(username, subdomain):
        log_event("REGISTER_FAIL_EXISTS", metadata={"username": username, "subdomain": subdomain})
        return jsonify(error="Username or subdomain already exists."), 409

    workshop = Workshop(
        workshop_name=workshop_name,
        username=username,
        email=email.lower(),
        phone=phone,
        subdomain=subdomain,
        password_hash=hash_password(password),
    )
    db.session.add(workshop)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent registration of the same name
        db.session.rollback()
        log_event("REGISTER_FAIL_EXISTS", metadata={"username": username, "subdomain": subdomain})
        return jsonify(error="Username or subdomain already exists."), 409
    log_event("REGISTER_SUCCESS", workshop_id=workshop.id)

    return jsonify(message="Workshop registered successfully."), 201


@auth_bp.post("/login")
@rate_limited("login", "LOGIN_RATE_MAX_REQUESTS")
def login():
    data = request.get_json(silent=True) or {}
    device_token = request.cookies.get(current_app.config.get("DEVICE_COOKIE_NAME", "device_token"))

    payload = login_flow.login(
        data.get("username"),
        data.get("password"),
        device_token=device_token,
        ip=client_ip(),
        user_agent=client_user_agent(),
    )
    return jsonify(payload), 200


@auth_bp.post("/verify-otp")
@rate_limited("verify_otp", "VERIFY_OTP_RATE_MAX_REQUESTS")
def verify_otp():
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    code = str(code) if code is not None else ""

    payload, raw_device_token = login_flow.verify_otp(
        data.get("otpToken"),
        code,
        ip=client_ip(),
        user_agent=client_user_agent(),
    )
    resp = jsonify(payload)
    return _set_device_cookie(resp, raw_device_token), 200


@auth_bp.post("/resend-otp")
@rate_limited("resend_otp", "RESEND_OTP_RATE_MAX_REQUESTS", default_limit=5)
def resend_otp():
    data = request.get_json(silent=True) or {}
    payload = login_flow.resend_otp(
        data.get("otpToken"),
        ip=client_ip(),
        user_agent=client_user_agent(),
    )
    return jsonify(payload), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.workshop.id,
        workshopName=g.workshop.workshop_name,
        username=g.workshop.username,
        email=g.workshop.email,
        phone=g.workshop.phone,
        subdomain=g.workshop.subdomain,
    ), 200
