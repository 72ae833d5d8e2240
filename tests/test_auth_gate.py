import time

import pytest
from _helpers import SECRET, bearer_for, create_user, error_codes

from apihub.context import EXTENSION_KEY
from apihub.jwt_utils import encode, issue_token_pair

GUARDED = ["/api/payments", "/api/graphql"]


@pytest.mark.parametrize("path", GUARDED)
def test_guarded_mount_without_token(client, path):
    r = client.get(path)
    assert r.status_code == 401
    assert r.get_json() == {
        "errors": [
            {
                "statusCode": "401",
                "message": "No authorization token was found",
                "code": "AUTH_TOKEN_MISSING",
                "meta": {},
            }
        ]
    }
    assert r.headers["WWW-Authenticate"].startswith("Bearer")


@pytest.mark.parametrize("path", GUARDED)
def test_guarded_mount_with_garbage_token(client, path):
    r = client.get(path, headers={"Authorization": "Bearer not.a.jwt"})
    assert r.status_code == 401
    assert error_codes(r) == ["AUTH_TOKEN_INVALID"]


def test_non_bearer_scheme_counts_as_missing(client):
    r = client.get("/api/payments", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert r.status_code == 401
    assert error_codes(r) == ["AUTH_TOKEN_MISSING"]


def test_refresh_token_not_accepted_as_access(client, user):
    _, refresh, _ = issue_token_pair(user_id=user.id, email=user.email, secret=SECRET)
    r = client.get("/api/payments", headers={"Authorization": f"Bearer {refresh}"})
    assert r.status_code == 401
    assert error_codes(r) == ["AUTH_TOKEN_INVALID"]


def test_expired_token_rejected(client, user):
    now = int(time.time())
    token = encode(
        {
            "sub": user.id,
            "email": user.email,
            "jti": "j1",
            "type": "access",
            "iss": "apihub",
            "aud": "api",
            "iat": now - 7200,
            "exp": now - 3600,
        },
        secret=SECRET,
        ttl=0,
    )
    r = client.get("/api/payments", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert error_codes(r) == ["AUTH_TOKEN_INVALID"]


def test_token_signed_with_unknown_secret_rejected(client, user):
    access, _, _ = issue_token_pair(user_id=user.id, email=user.email, secret="someone-else")
    r = client.get("/api/payments", headers={"Authorization": f"Bearer {access}"})
    assert r.status_code == 401


def test_valid_token_reaches_mount(client, auth_headers):
    r = client.get("/api/payments", headers=auth_headers)
    assert r.status_code == 200
    assert r.get_json() == {"payments": []}


def test_rotated_secret_still_accepted(make_app):
    app = make_app(jwt_secrets=["new-secret", SECRET])

    u = create_user(app, "rot@example.com")
    r = app.test_client().get("/api/payments", headers=bearer_for(u))
    assert r.status_code == 200


def test_rejected_request_never_reaches_collaborator(app, client, monkeypatch):
    calls = []
    services = app.extensions[EXTENSION_KEY]
    monkeypatch.setattr(services.payments, "charge", lambda *a, **k: calls.append(a))
    r = client.post("/api/payments", json={"amount": 100, "currency": "usd", "source": "tok_visa"})
    assert r.status_code == 401
    assert calls == []


def test_unknown_path_under_guarded_prefix_needs_token(client):
    r = client.get("/api/payments/does/not/exist")
    assert r.status_code == 401


def test_unknown_path_under_guarded_prefix_with_token_is_unknown_route(client, auth_headers):
    r = client.get("/api/payments/does/not/exist", headers=auth_headers)
    assert r.status_code == 404
    assert error_codes(r) == ["UNKNOWN_ROUTE"]


def test_prefix_match_respects_path_boundary(client):
    # /api/paymentsX is not under /api/payments
    r = client.get("/api/paymentsX")
    assert r.status_code == 404
    assert error_codes(r) == ["UNKNOWN_ROUTE"]


def test_open_mounts_need_no_token(client):
    assert client.get("/health-check").status_code == 200
    r = client.post("/api/auth/login", json={"email": "x@example.com", "password": "whatever1"})
    assert error_codes(r) == ["INVALID_CREDENTIALS"]


def test_health_check_ignores_bad_token(client):
    r = client.get("/health-check", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 200


def test_non_ascii_signature_is_invalid_token(client, user):
    access, _, _ = issue_token_pair(user_id=user.id, email=user.email, secret=SECRET)
    header_b, payload_b, _ = access.split(".")
    r = client.get("/api/payments", headers={"Authorization": f"Bearer {header_b}.{payload_b}.é"})
    assert r.status_code == 401
    assert error_codes(r) == ["AUTH_TOKEN_INVALID"]
