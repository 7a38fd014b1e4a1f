import uuid
from datetime import datetime
from models.db import db


class Workshop(db.Model):
    __tablename__ = "workshops"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    workshop_name = db.Column(db.String(100), nullable=False)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    subdomain = db.Column(db.String(100), unique=True, nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # tenant-owned auth rows go away with the workshop
    login_otps = db.relationship(
        "LoginOTP", back_populates="workshop", cascade="all, delete-orphan"
    )
    trusted_devices = db.relationship(
        "TrustedDevice", back_populates="workshop", cascade="all, delete-orphan"
    )
