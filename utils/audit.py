import json
from flask import request
from models import db
from models.audit_log import AuditLog


def client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def client_user_agent():
    return request.headers.get("User-Agent", "")


def log_event(action: str, workshop_id=None, metadata=None):
    user_agent = client_user_agent()

    row = AuditLog(
        workshop_id=str(workshop_id) if workshop_id is not None else None,
        action=action,
        ip=client_ip(),
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
