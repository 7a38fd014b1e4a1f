import uuid
from datetime import datetime, timedelta

import pytest

from models import db
from models.audit_log import AuditLog
from models.login_otp import LoginOTP
from models.trusted_device import TrustedDevice
from models.workshop import Workshop
from security import otp
from security.tokens import decode_token, issue_token


def _login(client, password, username="bob", device_token=None):
    headers = {"Cookie": f"device_token={device_token}"} if device_token else {}
    return client.post("/auth/login", json={"username": username, "password": password}, headers=headers)


def _verify(client, otp_token, code):
    return client.post("/auth/verify-otp", json={"otpToken": otp_token, "code": code})


def _device_cookie_header(resp):
    for header in resp.headers.getlist("Set-Cookie"):
        if header.startswith("device_token="):
            return header
    return None


def _cookie_value(header):
    return header.split(";", 1)[0].split("=", 1)[1]


def _wrong(code):
    return "000000" if code != "000000" else "999999"


def _full_login(client, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    resp = _verify(client, otp_token, outbox[-1]["code"])
    assert resp.status_code == 200
    return resp.get_json()["token"], _cookie_value(_device_cookie_header(resp))


def _actions():
    return [row.action for row in AuditLog.query.order_by(AuditLog.id).all()]


def test_bad_credentials_are_indistinguishable(client, workshop, password, outbox):
    wrong_password = _login(client, password + "x")
    unknown_user = _login(client, password, username="nobody")

    assert wrong_password.status_code == 401
    assert unknown_user.status_code == 401
    assert wrong_password.get_json() == unknown_user.get_json() == {"error": "Invalid credentials"}
    assert outbox == []
    assert LoginOTP.query.count() == 0


def test_login_requires_username_and_password(client, workshop, outbox):
    assert client.post("/auth/login", json={}).status_code == 401
    assert client.post("/auth/login", json={"username": "bob", "password": ""}).status_code == 401
    assert client.post("/auth/login", json={"username": ["bob"], "password": "x"}).status_code == 401


def test_login_without_device_asks_for_otp(client, workshop, password, outbox):
    resp = _login(client, password)
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["needOtp"] is True
    assert body["otpToken"]
    assert "token" not in body

    assert len(outbox) == 1
    assert outbox[0]["to"] == "bob@example.com"
    assert outbox[0]["code"] not in resp.get_data(as_text=True)
    assert LoginOTP.query.count() == 1


def test_correct_code_issues_token_and_device_cookie(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    resp = _verify(client, otp_token, outbox[0]["code"])
    body = resp.get_json()

    assert resp.status_code == 200
    assert decode_token(body["token"]) == uuid.UUID(workshop.id)
    assert body["workshopName"] == "Bob's Garage"
    assert body["subdomain"] == "bob"

    cookie = _device_cookie_header(resp)
    assert cookie is not None
    assert "HttpOnly" in cookie
    assert "Secure" in cookie
    assert "SameSite=Strict" in cookie
    assert "Max-Age=31536000" in cookie
    assert "Path=/" in cookie

    assert LoginOTP.query.count() == 0
    device = TrustedDevice.query.one()
    assert device.device_token_hash != _cookie_value(cookie)
    assert "OTP_VERIFIED" in _actions()


def test_successful_code_cannot_be_replayed(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    code = outbox[0]["code"]

    assert _verify(client, otp_token, code).status_code == 200
    replay = _verify(client, otp_token, code)

    assert replay.status_code == 400
    assert replay.get_json() == {"error": "Invalid or expired code"}
    assert TrustedDevice.query.count() == 1


def test_trusted_device_skips_otp(client, workshop, password, outbox):
    _, device_token = _full_login(client, password, outbox)

    resp = _login(client, password, device_token=device_token)
    body = resp.get_json()

    assert resp.status_code == 200
    assert "needOtp" not in body
    assert decode_token(body["token"]) == uuid.UUID(workshop.id)
    assert len(outbox) == 1
    assert LoginOTP.query.count() == 0
    assert "LOGIN_TRUSTED_DEVICE" in _actions()


def test_trusted_device_still_needs_the_password(client, workshop, password, outbox):
    _, device_token = _full_login(client, password, outbox)

    resp = _login(client, password + "x", device_token=device_token)
    assert resp.status_code == 401


def test_unknown_device_cookie_falls_back_to_otp(client, workshop, password, outbox):
    resp = _login(client, password, device_token="made-up-token")
    assert resp.get_json()["needOtp"] is True


def test_device_of_another_workshop_is_not_trusted(client, workshop, workshop_factory, password, outbox):
    workshop_factory(username="alice", password=password)
    _, bob_device = _full_login(client, password, outbox)

    resp = _login(client, password, username="alice", device_token=bob_device)
    assert resp.get_json()["needOtp"] is True


def test_wrong_code_consumes_attempts(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    wrong = _wrong(outbox[0]["code"])

    remaining = []
    for _ in range(5):
        resp = _verify(client, otp_token, wrong)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Incorrect code"
        remaining.append(resp.get_json()["attemptsRemaining"])

    assert remaining == [4, 3, 2, 1, 0]
    assert LoginOTP.query.one().attempts == 5


def test_sixth_attempt_fails_even_with_correct_code(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    code = outbox[0]["code"]

    for _ in range(5):
        _verify(client, otp_token, _wrong(code))
    resp = _verify(client, otp_token, code)

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid or expired code"}
    assert TrustedDevice.query.count() == 0
    assert _device_cookie_header(resp) is None

    fresh = _login(client, password).get_json()
    assert fresh["needOtp"] is True
    assert fresh["otpToken"] != otp_token


def test_correct_code_after_some_misses_succeeds(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    code = outbox[0]["code"]

    for _ in range(4):
        _verify(client, otp_token, _wrong(code))

    assert _verify(client, otp_token, code).status_code == 200


def test_expired_challenge_is_rejected(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    row = LoginOTP.query.one()
    row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.session.commit()

    resp = _verify(client, otp_token, outbox[0]["code"])

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid or expired code"}
    assert LoginOTP.query.one().attempts == 0


def test_unknown_challenge_is_rejected(client, workshop, outbox):
    assert _verify(client, "does-not-exist", "123456").status_code == 400
    assert _verify(client, None, "123456").status_code == 400


def test_challenge_deleted_mid_verify_is_rejected(client, workshop, password, outbox, monkeypatch):
    otp_token = _login(client, password).get_json()["otpToken"]

    def consume_after_concurrent_success(row, now=None):
        # another request verified the same challenge and committed first
        LoginOTP.query.filter_by(id=row.id).delete(synchronize_session=False)
        db.session.commit()
        return False

    monkeypatch.setattr(otp, "consume_attempt", consume_after_concurrent_success)
    resp = _verify(client, otp_token, outbox[0]["code"])

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid or expired code"}
    assert TrustedDevice.query.count() == 0
    assert "OTP_REJECTED" in _actions()


def test_attempts_remaining_counts_concurrent_misses(client, workshop, password, outbox, monkeypatch):
    otp_token = _login(client, password).get_json()["otpToken"]
    consume = otp.consume_attempt

    def consume_alongside_another_miss(row, now=None):
        LoginOTP.query.filter_by(id=row.id).update(
            {LoginOTP.attempts: LoginOTP.attempts + 1}, synchronize_session=False
        )
        return consume(row, now)

    monkeypatch.setattr(otp, "consume_attempt", consume_alongside_another_miss)
    resp = _verify(client, otp_token, _wrong(outbox[0]["code"]))

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Incorrect code", "attemptsRemaining": 3}
    db.session.expire_all()
    assert LoginOTP.query.one().attempts == 2


def test_failure_while_issuing_token_leaves_nothing_behind(client, workshop, password, outbox, monkeypatch):
    otp_token = _login(client, password).get_json()["otpToken"]
    code = outbox[0]["code"]

    def broken_issue_token(workshop_id):
        raise RuntimeError("signing key unavailable")

    monkeypatch.setattr("security.login_flow.issue_token", broken_issue_token)
    with pytest.raises(RuntimeError):
        _verify(client, otp_token, code)

    db.session.expire_all()
    assert TrustedDevice.query.count() == 0
    assert LoginOTP.query.one().attempts == 0
    assert "OTP_VERIFIED" not in _actions()

    monkeypatch.setattr("security.login_flow.issue_token", issue_token)
    resp = _verify(client, otp_token, code)

    assert resp.status_code == 200
    assert _device_cookie_header(resp) is not None
    assert TrustedDevice.query.count() == 1


def test_email_failure_keeps_the_challenge(client, workshop, password):
    # SMTP is not configured in tests, so the real dispatcher fails
    resp = _login(client, password)

    assert resp.status_code == 200
    assert resp.get_json()["needOtp"] is True
    assert LoginOTP.query.count() == 1
    assert "OTP_DISPATCH_FAIL" in _actions()


def test_failed_resend_hands_back_the_new_challenge(client, workshop, password, monkeypatch):
    # SMTP is not configured in tests, so every send fails
    otp_token = _login(client, password).get_json()["otpToken"]

    resp = client.post("/auth/resend-otp", json={"otpToken": otp_token})
    body = resp.get_json()

    assert resp.status_code == 502
    assert body["error"] == "Could not send verification email"
    assert body["otpToken"] != otp_token
    assert client.post("/auth/resend-otp", json={"otpToken": otp_token}).status_code == 400
    assert LoginOTP.query.count() == 1

    sent = []
    monkeypatch.setattr(
        "security.login_flow.send_otp_email",
        lambda to_email, code, workshop_name: sent.append(code),
    )
    retry = client.post("/auth/resend-otp", json={"otpToken": body["otpToken"]})

    assert retry.status_code == 200
    assert _verify(client, retry.get_json()["otpToken"], sent[0]).status_code == 200


def test_resend_replaces_the_challenge(client, workshop, password, outbox):
    old_token = _login(client, password).get_json()["otpToken"]

    resp = client.post("/auth/resend-otp", json={"otpToken": old_token})
    new_token = resp.get_json()["otpToken"]

    assert resp.status_code == 200
    assert new_token != old_token
    assert len(outbox) == 2
    assert _verify(client, old_token, outbox[1]["code"]).status_code == 400
    assert _verify(client, new_token, outbox[1]["code"]).status_code == 200


def test_resend_of_exhausted_challenge_is_rejected(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]
    for _ in range(5):
        _verify(client, otp_token, _wrong(outbox[0]["code"]))

    resp = client.post("/auth/resend-otp", json={"otpToken": otp_token})
    assert resp.status_code == 400
    assert len(outbox) == 1


def test_resends_are_capped_per_login(client, workshop, password, outbox):
    otp_token = _login(client, password).get_json()["otpToken"]

    for _ in range(3):
        resp = client.post("/auth/resend-otp", json={"otpToken": otp_token})
        assert resp.status_code == 200
        otp_token = resp.get_json()["otpToken"]

    capped = client.post("/auth/resend-otp", json={"otpToken": otp_token})

    assert capped.status_code == 429
    assert capped.get_json() == {"error": "Too many code requests. Log in again."}
    assert len(outbox) == 4
    assert "OTP_RESEND_LIMIT" in _actions()

    # a new password login starts a new resend budget
    assert LoginOTP.query.one().resend_count == 3
    fresh = _login(client, password).get_json()["otpToken"]
    assert client.post("/auth/resend-otp", json={"otpToken": fresh}).status_code == 200


def test_me_requires_bearer_token(client, workshop, password, outbox):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    token, _ = _full_login(client, password, outbox)
    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.get_json() == {
        "id": workshop.id,
        "workshopName": "Bob's Garage",
        "username": "bob",
        "email": "bob@example.com",
        "phone": "555-0100",
        "subdomain": "bob",
    }


def test_token_of_deleted_workshop_is_rejected(client, workshop, password, outbox):
    token, _ = _full_login(client, password, outbox)
    db.session.delete(workshop)
    db.session.commit()

    resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_list_and_revoke_devices(client, workshop, password, outbox):
    token, device_token = _full_login(client, password, outbox)
    headers = {"Authorization": f"Bearer {token}", "Cookie": f"device_token={device_token}"}

    devices = client.get("/auth/devices", headers=headers).get_json()["devices"]
    assert len(devices) == 1
    assert devices[0]["current"] is True

    resp = client.post(f"/auth/devices/{devices[0]['id']}/revoke", headers=headers)
    assert resp.status_code == 200
    assert client.post(f"/auth/devices/{devices[0]['id']}/revoke", headers=headers).status_code == 404

    again = _login(client, password, device_token=device_token).get_json()
    assert again["needOtp"] is True
    assert "DEVICE_REVOKED" in _actions()


def test_cannot_revoke_another_workshops_device(client, workshop, workshop_factory, password, outbox):
    workshop_factory(username="alice", password=password)
    _full_login(client, password, outbox)
    bob_device = TrustedDevice.query.one()

    otp_token = _login(client, password, username="alice").get_json()["otpToken"]
    alice_token = _verify(client, otp_token, outbox[-1]["code"]).get_json()["token"]

    resp = client.post(
        f"/auth/devices/{bob_device.id}/revoke",
        headers={"Authorization": f"Bearer {alice_token}"},
    )
    assert resp.status_code == 404
    assert db.session.get(TrustedDevice, bob_device.id).is_revoked is False


def test_revoke_all_clears_cookie(client, workshop, password, outbox):
    token, device_token = _full_login(client, password, outbox)

    resp = client.post("/auth/devices/revoke-all", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.get_json()["revoked"] == 1
    assert _device_cookie_header(resp).startswith("device_token=;")
    assert _login(client, password, device_token=device_token).get_json()["needOtp"] is True


def test_register_then_login(client, outbox):
    payload = {
        "workshopName": "Taller Norte",
        "username": "norte",
        "email": "Norte@Example.com",
        "phone": "555-0199",
        "subdomain": "norte",
        "password": "norte-secret-1",
    }
    resp = client.post("/auth/register", json=payload)
    assert resp.status_code == 201

    duplicate = client.post("/auth/register", json=dict(payload, subdomain="other"))
    assert duplicate.status_code == 409

    same_subdomain = client.post("/auth/register", json=dict(payload, username="norte2"))
    assert same_subdomain.status_code == 409

    login = _login(client, "norte-secret-1", username="norte")
    assert login.get_json()["needOtp"] is True
    assert outbox[0]["to"] == "norte@example.com"


def test_register_race_on_username_returns_409(client, workshop, monkeypatch):
    # both requests passed the existence check before either committed
    monkeypatch.setattr("routes.auth._registration_clash", lambda username, subdomain: None)

    resp = client.post(
        "/auth/register",
        json={
            "workshopName": "Bob Again",
            "username": "bob",
            "email": "other@example.com",
            "subdomain": "bob-two",
            "password": "another-pass-1",
        },
    )

    assert resp.status_code == 409
    assert resp.get_json() == {"error": "Username or subdomain already exists."}
    assert Workshop.query.count() == 1
    assert "REGISTER_FAIL_EXISTS" in _actions()


def test_register_validates_input(client):
    base = {"workshopName": "W", "username": "w", "email": "w@example.com", "password": "pw"}

    assert client.post("/auth/register", json=dict(base, email="nope")).status_code == 400
    assert client.post("/auth/register", json=dict(base, password="")).status_code == 400
    assert client.post("/auth/register", json=dict(base, username=None)).status_code == 400
    assert client.post("/auth/register", json=dict(base, phone=12345)).status_code == 400


def test_security_headers(client):
    resp = client.get("/health")

    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
