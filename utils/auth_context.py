from functools import wraps
from flask import g, jsonify, request
from models import db
from models.workshop import Workshop
from security.tokens import decode_token


def _bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_workshop():
    # tenant id is parsed once here; handlers read g.workshop_id
    workshop_id = decode_token(_bearer_token())
    if workshop_id is None:
        g.workshop_id = None
        g.workshop = None
        return
    g.workshop = db.session.get(Workshop, str(workshop_id))
    g.workshop_id = workshop_id if g.workshop is not None else None

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "workshop", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
