import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


def issue_token(workshop_id) -> str:
    """
    Signs a bearer token for a workshop.
    The tenant id travels in both `sub` and `workshop_id`.
    """
    now = datetime.now(timezone.utc)
    days = current_app.config.get("JWT_EXPIRES_DAYS", 7)

    claims = {
        "sub": str(workshop_id),
        "workshop_id": str(workshop_id),
        "role": "admin",
        "iss": current_app.config["JWT_ISSUER"],
        "iat": now,
        "exp": now + timedelta(days=days),
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_token(token: str):
    """
    Validates signature, issuer and expiry.
    Returns the workshop id as uuid.UUID, or None if the token is unusable.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            issuer=current_app.config["JWT_ISSUER"],
            options={"require": ["exp", "iss", "workshop_id"]},
        )
    except jwt.InvalidTokenError:
        return None

    try:
        return uuid.UUID(str(claims["workshop_id"]))
    except ValueError:
        return None
