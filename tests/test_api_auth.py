from conftest import PASSWORD, auth_header

API = "/api/v1"


def test_health(client):
    resp = client.get(f"{API}/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "database": "ok"}


def test_register_returns_public_user(client, notifier):
    resp = client.post(
        f"{API}/auth/register",
        json={"email": "  reg@example.com ", "password": PASSWORD, "name": "Reg", "phone": "+1"},
    )
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["email"] == "reg@example.com"
    assert data["email_verified"] is False
    assert "password_hash" not in data
    assert "verification_token" not in data
    assert notifier.verification[-1][0] == "reg@example.com"


def test_register_validation_error(client):
    resp = client.post(f"{API}/auth/register", json={"email": "not-an-email", "password": "short", "name": ""})
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["error"] == "VALIDATION_ERROR"
    assert {"email", "password", "name"} <= set(body["details"])


def test_register_conflict(client):
    payload = {"email": "twice@example.com", "password": PASSWORD, "name": "Twice"}
    assert client.post(f"{API}/auth/register", json=payload).status_code == 201
    resp = client.post(f"{API}/auth/register", json=payload)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "USER_ALREADY_EXISTS"


def test_login_requires_verified_email(client):
    client.post(f"{API}/auth/register", json={"email": "nv@example.com", "password": PASSWORD, "name": "NV"})
    resp = client.post(f"{API}/auth/login", json={"email": "nv@example.com", "password": PASSWORD})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "EMAIL_NOT_VERIFIED"


def test_login_bad_credentials(client, login):
    login(email="bad@example.com")
    resp = client.post(f"{API}/auth/login", json={"email": "bad@example.com", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "INVALID_CREDENTIALS", "message": "invalid email or password", "status": 401}


def test_login_returns_tokens_and_user(login):
    data = login()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == 15 * 60
    assert data["access_token"] and data["refresh_token"]
    assert data["user"]["email_verified"] is True


def test_refresh_rotation_and_reuse(client, login):
    tokens = login()
    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    rotated = resp.get_json()["data"]
    assert rotated["refresh_token"] != tokens["refresh_token"]

    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "TOKEN_REVOKED"


def test_refresh_with_access_token_is_rejected(client, login):
    tokens = login()
    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "INVALID_TOKEN"


def test_logout_revokes_refresh_tokens(client, login):
    tokens = login()
    resp = client.post(f"{API}/auth/logout", headers=auth_header(tokens["access_token"]))
    assert resp.status_code == 200
    resp = client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "TOKEN_REVOKED"


def test_logout_requires_bearer(client):
    resp = client.post(f"{API}/auth/logout")
    assert resp.status_code == 401
    resp = client.post(f"{API}/auth/logout", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401
    resp = client.post(f"{API}/auth/logout", headers=auth_header("garbage"))
    assert resp.get_json()["error"] == "INVALID_TOKEN"


def test_verify_email_errors(client):
    resp = client.post(f"{API}/auth/verify-email", json={"token": "unknown"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "INVALID_VERIFICATION_TOKEN"
    resp = client.post(f"{API}/auth/verify-email", json={})
    assert resp.status_code == 422


def test_resend_verification(client, notifier):
    client.post(f"{API}/auth/register", json={"email": "rs@example.com", "password": PASSWORD, "name": "RS"})
    resp = client.post(f"{API}/auth/resend-verification", json={"email": "rs@example.com"})
    assert resp.status_code == 200
    assert len(notifier.verification) == 2

    resp = client.post(f"{API}/auth/resend-verification", json={"email": "ghost@example.com"})
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "USER_NOT_FOUND"


def test_forgot_password_does_not_reveal_accounts(client, login, notifier):
    login(email="known@example.com")
    known = client.post(f"{API}/auth/forgot-password", json={"email": "known@example.com"})
    unknown = client.post(f"{API}/auth/forgot-password", json={"email": "unknown@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()
    assert [to for to, _, _ in notifier.reset] == ["known@example.com"]


def test_reset_password_flow(client, login, notifier):
    login(email="reset@example.com")
    client.post(f"{API}/auth/forgot-password", json={"email": "reset@example.com"})
    token = notifier.reset[-1][2]

    resp = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "new-password-1"})
    assert resp.status_code == 200
    resp = client.post(f"{API}/auth/login", json={"email": "reset@example.com", "password": "new-password-1"})
    assert resp.status_code == 200

    resp = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "new-password-2"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "INVALID_RESET_TOKEN"


def test_google_login_sets_state_cookie(client):
    resp = client.get(f"{API}/auth/google")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["state"] in data["auth_url"]
    cookie = resp.headers["Set-Cookie"]
    assert cookie.startswith(f"oauth_state={data['state']}")
    assert "HttpOnly" in cookie
    assert "Max-Age=600" in cookie


def test_google_callback_issues_tokens(client, bridge):
    state = client.get(f"{API}/auth/google").get_json()["data"]["state"]
    resp = client.get(f"{API}/auth/google/callback", query_string={"code": "good-code", "state": state})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["user"]["email"] == bridge.identity.email
    assert data["user"]["oauth_provider"] == "google"
    assert data["access_token"]
    assert bridge.codes == ["good-code"]


def test_google_callback_state_mismatch(client, bridge):
    client.get(f"{API}/auth/google")
    resp = client.get(f"{API}/auth/google/callback", query_string={"code": "good-code", "state": "forged"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "INVALID_OAUTH_STATE"
    assert bridge.codes == []


def test_google_callback_non_ascii_state_is_rejected(client, bridge):
    client.get(f"{API}/auth/google")
    resp = client.get(f"{API}/auth/google/callback", query_string={"code": "good-code", "state": "é"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "INVALID_OAUTH_STATE"
    assert bridge.codes == []


def test_google_callback_exchange_failure(client):
    state = client.get(f"{API}/auth/google").get_json()["data"]["state"]
    resp = client.get(f"{API}/auth/google/callback", query_string={"code": "bad-code", "state": state})
    assert resp.status_code == 502
    assert resp.get_json()["error"] == "OAUTH_EXCHANGE_FAILED"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get(f"{API}/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NOT_FOUND"
