from datetime import datetime
from models.db import db


class TrustedDevice(db.Model):
    __tablename__ = "trusted_devices"

    id = db.Column(db.Integer, primary_key=True)
    workshop_id = db.Column(
        db.String(36), db.ForeignKey("workshops.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # hash of the device_token cookie (never store raw token)
    device_token_hash = db.Column(db.String(128), nullable=False, index=True)

    user_agent = db.Column(db.String(256), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_used_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    is_revoked = db.Column(db.Boolean, default=False, nullable=False)
    revoked_at = db.Column(db.DateTime, nullable=True)

    workshop = db.relationship("Workshop", back_populates="trusted_devices")
