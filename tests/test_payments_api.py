import pytest
from _helpers import bearer_for, error_codes

from apihub.errors import ValidationFailure
from apihub.payments import DECLINED_SOURCE, FakeGateway, build_gateway, validate_charge

CHARGE = {"amount": 1250, "currency": "USD", "source": "tok_visa", "description": "Order #1"}


def _charge(client, headers, **over):
    return client.post("/api/payments", json={**CHARGE, **over}, headers=headers)


def test_create_payment(client, auth_headers):
    r = _charge(client, auth_headers)
    assert r.status_code == 201
    payment = r.get_json()["payment"]
    assert payment["amount"] == 1250
    assert payment["currency"] == "usd"
    assert payment["status"] == "succeeded"
    assert payment["providerRef"].startswith("ch_")


def test_list_payments_newest_first(client, auth_headers):
    first = _charge(client, auth_headers).get_json()["payment"]["id"]
    second = _charge(client, auth_headers, amount=99).get_json()["payment"]["id"]
    r = client.get("/api/payments", headers=auth_headers)
    assert [p["id"] for p in r.get_json()["payments"]] == [second, first]


def test_list_with_trailing_slash(client, auth_headers):
    assert client.get("/api/payments/", headers=auth_headers).status_code == 200


def test_get_payment(client, auth_headers):
    pid = _charge(client, auth_headers).get_json()["payment"]["id"]
    r = client.get(f"/api/payments/{pid}", headers=auth_headers)
    assert r.status_code == 200
    assert r.get_json()["payment"]["id"] == pid


def test_other_users_payment_is_not_found(client, auth_headers, other_user):
    pid = _charge(client, auth_headers).get_json()["payment"]["id"]
    r = client.get(f"/api/payments/{pid}", headers=bearer_for(other_user))
    assert r.status_code == 404
    assert error_codes(r) == ["PAYMENT_NOT_FOUND"]
    r = client.get("/api/payments", headers=bearer_for(other_user))
    assert r.get_json() == {"payments": []}


def test_declined_charge(client, auth_headers):
    r = _charge(client, auth_headers, source=DECLINED_SOURCE)
    assert r.status_code == 402
    assert error_codes(r) == ["PAYMENT_DECLINED"]
    assert client.get("/api/payments", headers=auth_headers).get_json() == {"payments": []}


def test_validation_errors(client, auth_headers):
    r = client.post("/api/payments", json={"amount": -5, "currency": "xyz"}, headers=auth_headers)
    assert r.status_code == 422
    fields = {e["meta"]["field"] for e in r.get_json()["errors"]}
    assert fields == {"amount", "currency", "source"}


def test_refund(client, auth_headers):
    pid = _charge(client, auth_headers).get_json()["payment"]["id"]
    r = client.post(f"/api/payments/{pid}/refund", headers=auth_headers)
    assert r.status_code == 200
    assert r.get_json()["payment"]["status"] == "refunded"
    r = client.post(f"/api/payments/{pid}/refund", headers=auth_headers)
    assert r.status_code == 409
    assert error_codes(r) == ["PAYMENT_ALREADY_REFUNDED"]


def test_refund_missing_payment(client, auth_headers):
    r = client.post("/api/payments/9999/refund", headers=auth_headers)
    assert r.status_code == 404


@pytest.mark.parametrize("amount", [0, 1.5, "100", True, None])
def test_validate_charge_amount(amount):
    with pytest.raises(ValidationFailure) as ei:
        validate_charge({**CHARGE, "amount": amount}, ["usd"])
    assert [e["meta"]["field"] for e in ei.value.json_response] == ["amount"]


def test_validate_charge_normalizes():
    clean = validate_charge({**CHARGE, "source": "  tok_visa "}, ["usd"])
    assert clean["currency"] == "usd"
    assert clean["source"] == "tok_visa"


def test_build_gateway():
    assert isinstance(build_gateway("fake"), FakeGateway)
    with pytest.raises(ValueError):
        build_gateway("mystery")
