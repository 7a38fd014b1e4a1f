from datetime import datetime
from models.db import db


class LoginOTP(db.Model):
    __tablename__ = "login_otps"

    id = db.Column(db.Integer, primary_key=True)
    workshop_id = db.Column(
        db.String(36), db.ForeignKey("workshops.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # only hashes are stored: the otpToken handed to the client and the emailed code
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)
    code_hash = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    attempts = db.Column(db.Integer, default=0, nullable=False)
    max_attempts = db.Column(db.Integer, default=5, nullable=False)

    # how many times this password login has re-sent its code
    resend_count = db.Column(db.Integer, default=0, nullable=False)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    workshop = db.relationship("Workshop", back_populates="login_otps")
