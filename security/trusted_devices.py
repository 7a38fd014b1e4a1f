import secrets
from datetime import datetime

from models import db
from models.trusted_device import TrustedDevice
from security.hashing import sha256_hex


def _active_query(workshop_id):
    return TrustedDevice.query.filter_by(workshop_id=str(workshop_id), is_revoked=False)


def find_trusted(workshop_id, raw_token: str):
    """
    Returns the non-revoked device of this workshop whose hash matches the
    cookie value, or None. The comparison is on hashes only.
    """
    if not raw_token or not isinstance(raw_token, str):
        return None
    return _active_query(workshop_id).filter_by(device_token_hash=sha256_hex(raw_token)).first()


def is_trusted(workshop_id, raw_token: str) -> bool:
    return find_trusted(workshop_id, raw_token) is not None


def register_device(workshop_id, user_agent=None, ip_address=None) -> str:
    """
    Adds a trusted device and returns the RAW token (to set as cookie).
    Only the hash is stored. Does not commit.
    """
    raw_token = secrets.token_urlsafe(32)
    now = datetime.utcnow()

    row = TrustedDevice(
        workshop_id=str(workshop_id),
        device_token_hash=sha256_hex(raw_token),
        user_agent=(user_agent or "")[:256] or None,
        ip_address=(ip_address or "")[:64] or None,
        created_at=now,
        last_used_at=now,
    )
    db.session.add(row)
    return raw_token


def touch_device(device: TrustedDevice) -> None:
    device.last_used_at = datetime.utcnow()
    db.session.commit()


def list_devices(workshop_id):
    return (
        _active_query(workshop_id)
        .order_by(TrustedDevice.last_used_at.desc())
        .all()
    )


def revoke_device(workshop_id, device_id: int) -> bool:
    device = _active_query(workshop_id).filter_by(id=device_id).first()
    if not device:
        return False
    device.is_revoked = True
    device.revoked_at = datetime.utcnow()
    db.session.commit()
    return True


def revoke_all_devices(workshop_id) -> int:
    devices = _active_query(workshop_id).all()
    now = datetime.utcnow()
    for d in devices:
        d.is_revoked = True
        d.revoked_at = now
    db.session.commit()
    return len(devices)
