def test_health_check(client):
    r = client.get("/health-check")
    assert r.status_code == 200
    body = r.get_json()
    assert set(body) == {"uptime"}
    assert body["uptime"] >= 0


def test_health_check_has_no_request_id(client):
    # answered ahead of the logging stage
    r = client.get("/health-check")
    assert "X-Request-Id" not in r.headers


def test_static_file_served(client):
    r = client.get("/public/hello.txt")
    assert r.status_code == 200
    assert r.data == b"hello from public"
    r.close()


def test_static_file_ignores_authorization_header(client):
    # static files are served ahead of the bearer gate
    r = client.get("/public/hello.txt", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 200
    r.close()
