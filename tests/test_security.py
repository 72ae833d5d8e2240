import pytest

from apihub.security import CORS_ALLOWED_METHODS, render_csp

from _helpers import ALLOWED_ORIGIN


def test_security_headers_present(client):
    r = client.get("/health-check")
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "same-origin"
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert "Content-Security-Policy" in r.headers


def test_security_headers_on_static_files(client):
    r = client.get("/public/hello.txt")
    assert r.status_code == 200
    assert r.data == b"hello from public"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "same-origin"
    r.close()


def test_csp_rendered_from_default_config(client):
    csp = client.get("/health-check").headers["Content-Security-Policy"]
    directives = [d.strip() for d in csp.split(";")]
    assert "default-src 'self'" in directives
    assert "object-src 'none'" in directives
    assert "frame-ancestors 'none'" in directives


def test_csp_follows_configured_directives(make_app):
    app = make_app(content_security_policy={"defaultSrc": ["'none'"], "imgSrc": ["https://img.example"]})
    csp = app.test_client().get("/health-check").headers["Content-Security-Policy"]
    assert csp == "default-src 'none'; img-src https://img.example"


@pytest.mark.parametrize(
    "directives, expected",
    [
        ({"defaultSrc": ["'self'"]}, "default-src 'self'"),
        ({"scriptSrc": ["'self'", "https://cdn.example"]}, "script-src 'self' https://cdn.example"),
        ({"upgradeInsecureRequests": True}, "upgrade-insecure-requests"),
        ({"blockAllMixedContent": False, "defaultSrc": "'self'"}, "default-src 'self'"),
        ({"font-src": ["data:"]}, "font-src data:"),
        ({"imgSrc": []}, ""),
    ],
)
def test_render_csp(directives, expected):
    assert render_csp(directives) == expected


def test_no_hsts_in_test_env(client):
    assert "Strict-Transport-Security" not in client.get("/health-check").headers


def test_production_env_adds_hsts_and_strict_csp(make_app):
    app = make_app(env="production")
    r = app.test_client().get("/health-check")
    assert r.headers["Strict-Transport-Security"].startswith("max-age=")
    csp = r.headers["Content-Security-Policy"]
    assert "script-src 'self';" in csp + ";"
    assert "upgrade-insecure-requests" in csp
    # unchanged directives still come from default.yaml
    assert "object-src 'none'" in csp


def test_cors_allowed_origin(client):
    r = client.post("/api/auth/login", json={}, headers={"Origin": ALLOWED_ORIGIN})
    assert r.headers.get("Access-Control-Allow-Origin") == ALLOWED_ORIGIN
    assert "Origin" in r.headers.get("Vary", "")


def test_cors_denied_origin(client):
    r = client.post("/api/auth/login", json={}, headers={"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in r.headers


def test_cors_headers_on_error_responses(client):
    r = client.get("/nowhere", headers={"Origin": ALLOWED_ORIGIN})
    assert r.status_code == 404
    assert r.headers.get("Access-Control-Allow-Origin") == ALLOWED_ORIGIN


def test_cors_credentials_when_configured(make_app):
    app = make_app(cors_credentials=True)
    r = app.test_client().post("/api/auth/login", json={}, headers={"Origin": ALLOWED_ORIGIN})
    assert r.headers.get("Access-Control-Allow-Credentials") == "true"


def test_preflight_answered_without_token(client):
    r = client.options(
        "/api/payments",
        headers={
            "Origin": ALLOWED_ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert r.status_code == 200
    assert r.data == b""
    assert r.headers["Access-Control-Allow-Origin"] == ALLOWED_ORIGIN
    assert r.headers["Access-Control-Allow-Methods"] == CORS_ALLOWED_METHODS
    assert r.headers["Access-Control-Allow-Headers"] == "Authorization, Content-Type"
    assert r.headers["X-Frame-Options"] == "DENY"


def test_preflight_from_other_origin_has_no_cors_headers(client):
    r = client.options(
        "/api/graphql",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 200
    assert "Access-Control-Allow-Origin" not in r.headers


def test_preflight_status_is_configurable(make_app):
    app = make_app(cors_options_success_status=204)
    r = app.test_client().options(
        "/api/mailer/send", headers={"Origin": ALLOWED_ORIGIN, "Access-Control-Request-Method": "POST"}
    )
    assert r.status_code == 204


def test_plain_options_is_not_a_preflight(client):
    r = client.options("/api/payments")
    # no Access-Control-Request-Method: goes through the bearer gate like any other request
    assert r.status_code == 401
