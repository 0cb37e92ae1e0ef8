LOCAL_PHONE = "0812-3456-7890"
PHONE = "+6281234567890"


def _send_and_read_code(api, phone=LOCAL_PHONE):
    resp = api.post("/api/v1/auth/otp/send", json={"phone": phone})
    assert resp.status_code == 200, resp.text
    return api.sms.sent[-1][1].rsplit(" ", 1)[-1]


def _login(api, device_id="phone-a"):
    code = _send_and_read_code(api)
    resp = api.post("/api/v1/auth/otp/verify", json={"phone": LOCAL_PHONE, "code": code, "device_id": device_id})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def test_send_otp_normalizes_phone(api):
    resp = api.post("/api/v1/auth/otp/send", json={"phone": LOCAL_PHONE})
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["expires_in"] == 300
    assert api.sms.sent[0][0] == PHONE


def test_send_otp_rejects_bad_phone(api):
    resp = api.post("/api/v1/auth/otp/send", json={"phone": "12345"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_unknown_fields_are_rejected(api):
    resp = api.post("/api/v1/auth/otp/send", json={"phone": LOCAL_PHONE, "admin": True})
    assert resp.status_code == 400
    assert resp.json()["code"] == "BAD_REQUEST"


def test_resend_cooldown_sets_retry_after(api):
    _send_and_read_code(api)
    resp = api.post("/api/v1/auth/otp/send", json={"phone": LOCAL_PHONE})
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "60"
    assert resp.json()["code"] == "RATE_LIMITED"


def test_verify_otp_returns_tokens_and_user(api):
    data = _login(api)
    assert data["access_token"] and data["refresh_token"]
    assert data["user"]["phone"] == PHONE
    assert data["user"]["is_verified"] is True
    assert data["is_new_user"] is True


def test_verify_wrong_code(api):
    _send_and_read_code(api)
    resp = api.post("/api/v1/auth/otp/verify", json={"phone": LOCAL_PHONE, "code": "0000000"})
    assert resp.status_code == 401


def test_verify_rejects_non_numeric_code(api):
    resp = api.post("/api/v1/auth/otp/verify", json={"phone": LOCAL_PHONE, "code": "12ab56"})
    assert resp.status_code == 400


def test_refresh_rotates(api):
    data = _login(api)
    resp = api.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"], "device_id": "phone-a"})
    assert resp.status_code == 200
    assert resp.json()["data"]["refresh_token"] != data["refresh_token"]

    replay = api.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"], "device_id": "phone-a"})
    assert replay.status_code == 401


def test_sessions_requires_bearer(api):
    assert api.get("/api/v1/auth/sessions").status_code == 401


def test_sessions_lists_devices(api):
    data = _login(api)
    resp = api.get("/api/v1/auth/sessions", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert resp.status_code == 200
    assert [d["device_id"] for d in resp.json()["data"]["devices"]] == ["phone-a"]


def test_logout_revokes_tokens(api):
    data = _login(api)
    headers = {"Authorization": f"Bearer {data['access_token']}"}
    resp = api.post("/api/v1/auth/logout", json={"refresh_token": data["refresh_token"]}, headers=headers)
    assert resp.status_code == 204

    assert api.get("/api/v1/auth/sessions", headers=headers).status_code == 401
    resp = api.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
    assert resp.status_code == 401


def test_reverse_otp_round_trip(api):
    init = api.post("/api/v1/auth/reverse-otp/init", json={"phone": LOCAL_PHONE})
    assert init.status_code == 200
    session = init.json()["data"]
    assert session["target_number"] == api.messaging.business_number

    check = api.post("/api/v1/auth/reverse-otp/check", json={"session_id": session["session_id"]})
    assert check.json()["data"] == {"status": "pending"}

    hook = api.post("/api/v1/webhooks/whatsapp", json={"from": "whatsapp:" + PHONE, "message": session["code"]})
    assert hook.json() == {"status": "received"}

    check = api.post("/api/v1/auth/reverse-otp/check",
                     json={"session_id": session["session_id"], "device_id": "phone-a"})
    data = check.json()["data"]
    assert data["status"] == "verified"
    assert data["user"]["phone"] == PHONE
    assert data["access_token"]

    again = api.post("/api/v1/auth/reverse-otp/check", json={"session_id": session["session_id"]})
    assert again.status_code == 404


def test_check_unknown_session(api):
    resp = api.post("/api/v1/auth/reverse-otp/check", json={"session_id": "nope"})
    assert resp.status_code == 404


def test_health(api):
    resp = api.get("/health")
    assert resp.status_code == 200
    assert resp.json()["store"]["backend"] == "InMemoryStore"


def test_logout_with_expired_access_token_still_revokes(api, store, clock):
    from app import dependencies
    from app.application.services.token_service import TokenService
    from app.core.config import settings
    from app.main import app

    app.dependency_overrides[dependencies.get_token_service] = lambda: TokenService(
        store=store, config=settings.token_config(), clock=clock
    )
    data = _login(api)
    clock.advance(settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60 + 1)
    headers = {"Authorization": f"Bearer {data['access_token']}"}

    resp = api.post("/api/v1/auth/logout", json={"refresh_token": data["refresh_token"]}, headers=headers)
    assert resp.status_code == 204
    resp = api.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"], "device_id": "phone-a"})
    assert resp.status_code == 401


def test_logout_without_credentials(api):
    assert api.post("/api/v1/auth/logout").status_code == 401


def test_http_rate_limit_counts_per_client(api, store):
    api.post("/api/v1/auth/reverse-otp/check", json={"session_id": "nope"})
    assert store.get("rl:http:testclient:60") == "1"
