from datetime import datetime
from models.db import db

class IpRateLimit(db.Model):
    __tablename__ = "ip_rate_limits"
    __table_args__ = (db.UniqueConstraint("ip", "scope", name="uq_ip_rate_limits_ip_scope"),)

    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    scope = db.Column(db.String(32), nullable=False)  # e.g. login, verify_otp, resend_otp

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
