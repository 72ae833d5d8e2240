from __future__ import annotations

from flask import Blueprint, jsonify

from .auth import current_user
from .body_parsing import request_body
from .context import get_services
from .routes import BASE_URL

# Mounted behind the bearer gate (route table marks /api/payments as guarded);
# g.user is always set by the time these views run.
bp = Blueprint("payments", __name__, url_prefix=f"{BASE_URL}/payments")


@bp.get("/", strict_slashes=False)
def list_payments():
    payments = get_services().payments.list_for_user(current_user().id)
    return jsonify({"payments": [p.to_dict() for p in payments]})


@bp.post("/", strict_slashes=False)
def create_payment():
    payment = get_services().payments.charge(current_user().id, request_body())
    return jsonify({"payment": payment.to_dict()}), 201


@bp.get("/<int:payment_id>")
def get_payment(payment_id: int):
    payment = get_services().payments.get_for_user(current_user().id, payment_id)
    return jsonify({"payment": payment.to_dict()})


@bp.post("/<int:payment_id>/refund")
def refund_payment(payment_id: int):
    payment = get_services().payments.refund(current_user().id, payment_id)
    return jsonify({"payment": payment.to_dict()})
