"""Payment gateway abstraction and the payments service used by REST and GraphQL."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select

from .db import get_session
from .errors import UpstreamError, ValidationFailure
from .models import Payment

log = logging.getLogger(__name__)

DECLINED_SOURCE = "tok_declined"


class PaymentDeclined(UpstreamError):
    default_status = 402
    default_code = "PAYMENT_DECLINED"
    default_message = "Payment was declined"


class PaymentNotFound(UpstreamError):
    default_status = 404
    default_code = "PAYMENT_NOT_FOUND"
    default_message = "Payment not found"


@dataclass(frozen=True)
class ChargeResult:
    reference: str
    status: str


class PaymentGateway(Protocol):
    def charge(self, *, amount: int, currency: str, source: str, description: str | None) -> ChargeResult: ...

    def refund(self, reference: str) -> ChargeResult: ...


class FakeGateway:
    """In-process gateway: every charge succeeds except the declined test source."""

    def charge(self, *, amount: int, currency: str, source: str, description: str | None) -> ChargeResult:
        if source == DECLINED_SOURCE:
            raise PaymentDeclined(meta={"source": source})
        return ChargeResult(reference=f"ch_{secrets.token_hex(12)}", status="succeeded")

    def refund(self, reference: str) -> ChargeResult:
        return ChargeResult(reference=reference, status="refunded")


def build_gateway(name: str) -> PaymentGateway:
    if name == "fake":
        return FakeGateway()
    raise ValueError(f"unknown payments gateway: {name}")


def validate_charge(data: Mapping[str, Any], currencies: list[str]) -> dict[str, Any]:
    problems: dict[str, str] = {}
    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        problems["amount"] = "amount must be a positive integer (minor units)"
    currency = str(data.get("currency") or "").strip().lower()
    if currency not in currencies:
        problems["currency"] = f"currency must be one of {', '.join(currencies)}"
    source = data.get("source")
    if not isinstance(source, str) or not source.strip():
        problems["source"] = "source is required"
    description = data.get("description")
    if description is not None and (not isinstance(description, str) or len(description) > 500):
        problems["description"] = "description must be a string of at most 500 characters"
    if problems:
        raise ValidationFailure.from_fields(problems)
    return {"amount": amount, "currency": currency, "source": source.strip(), "description": description}


class PaymentsService:
    def __init__(self, gateway: PaymentGateway, currencies: list[str]):
        self.gateway = gateway
        self.currencies = [c.lower() for c in currencies]

    def list_for_user(self, user_id: int) -> list[Payment]:
        stmt = select(Payment).where(Payment.user_id == user_id).order_by(Payment.id.desc())
        return list(get_session().scalars(stmt))

    def get_for_user(self, user_id: int, payment_id: int) -> Payment:
        payment = get_session().get(Payment, payment_id)
        # Other users' payments are indistinguishable from missing ones
        if payment is None or payment.user_id != user_id:
            raise PaymentNotFound(meta={"id": payment_id})
        return payment

    def charge(self, user_id: int, data: Mapping[str, Any]) -> Payment:
        clean = validate_charge(data, self.currencies)
        result = self.gateway.charge(
            amount=clean["amount"],
            currency=clean["currency"],
            source=clean["source"],
            description=clean["description"],
        )
        db = get_session()
        payment = Payment(
            user_id=user_id,
            amount=clean["amount"],
            currency=clean["currency"],
            description=clean["description"],
            status=result.status,
            provider_ref=result.reference,
        )
        db.add(payment)
        db.commit()
        log.info("payment charged", extra={"payment_id": payment.id, "user_id": user_id})
        return payment

    def refund(self, user_id: int, payment_id: int) -> Payment:
        payment = self.get_for_user(user_id, payment_id)
        if payment.status == "refunded":
            raise UpstreamError(
                "Payment already refunded", code="PAYMENT_ALREADY_REFUNDED", status_code=409, meta={"id": payment_id}
            )
        result = self.gateway.refund(payment.provider_ref)
        payment.status = result.status
        get_session().commit()
        log.info("payment refunded", extra={"payment_id": payment.id, "user_id": user_id})
        return payment


__all__ = [
    "ChargeResult",
    "DECLINED_SOURCE",
    "FakeGateway",
    "PaymentDeclined",
    "PaymentGateway",
    "PaymentNotFound",
    "PaymentsService",
    "build_gateway",
    "validate_charge",
]
