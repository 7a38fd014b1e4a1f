from flask import Blueprint, request, jsonify, current_app, g

from security import trusted_devices
from security.hashing import sha256_hex
from utils.audit import log_event
from utils.auth_context import login_required


devices_bp = Blueprint("devices", __name__, url_prefix="/auth/devices")


def _iso(value):
    return value.isoformat() + "Z" if value else None


@devices_bp.get("")
@login_required
def list_devices():
    cookie_name = current_app.config.get("DEVICE_COOKIE_NAME", "device_token")
    raw_token = request.cookies.get(cookie_name)
    current_hash = sha256_hex(raw_token) if raw_token else None

    devices = trusted_devices.list_devices(g.workshop_id)
    return jsonify(devices=[
        {
            "id": d.id,
            "userAgent": d.user_agent,
            "ipAddress": d.ip_address,
            "createdAt": _iso(d.created_at),
            "lastUsedAt": _iso(d.last_used_at),
            "current": d.device_token_hash == current_hash,
        }
        for d in devices
    ]), 200


@devices_bp.post("/<int:device_id>/revoke")
@login_required
def revoke_device(device_id):
    if not trusted_devices.revoke_device(g.workshop_id, device_id):
        return jsonify(error="Device not found"), 404

    log_event("DEVICE_REVOKED", workshop_id=g.workshop_id, metadata={"device_id": device_id})
    return jsonify(message="Device revoked"), 200


@devices_bp.post("/revoke-all")
@login_required
def revoke_all():
    cookie_name = current_app.config.get("DEVICE_COOKIE_NAME", "device_token")

    count = trusted_devices.revoke_all_devices(g.workshop_id)
    log_event("DEVICES_REVOKED_ALL", workshop_id=g.workshop_id, metadata={"revoked": count})

    resp = jsonify(message="All devices revoked", revoked=count)
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
