from __future__ import annotations

import logging
import re
from typing import Any

from flask import Blueprint, g, jsonify, render_template
from jinja2 import TemplateNotFound

from .auth import authenticate_bearer
from .body_parsing import request_body
from .context import get_services
from .db import get_session
from .errors import UpstreamError, ValidationFailure
from .mailer import MailDeliveryError, OutgoingMail
from .models import MailMessage
from .routes import BASE_URL

log = logging.getLogger(__name__)

bp = Blueprint("mailer", __name__, url_prefix=f"{BASE_URL}/mailer", template_folder="templates")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_RECIPIENTS = 20
_TEMPLATE_NAME_RE = re.compile(r"^[a-z0-9_-]+$")


def _recipients(raw: Any) -> list[str] | None:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not raw or len(raw) > MAX_RECIPIENTS:
        return None
    out = [str(r).strip() for r in raw]
    if not all(_EMAIL_RE.match(r) for r in out):
        return None
    return out


def _render_body(data: dict[str, Any], problems: dict[str, str]) -> str | None:
    text = data.get("text")
    template = data.get("template")
    if template is None:
        if not isinstance(text, str) or not text.strip():
            problems["text"] = "text or template is required"
            return None
        return text
    if not isinstance(template, str) or not _TEMPLATE_NAME_RE.match(template):
        problems["template"] = "template must be a simple name"
        return None
    context = data.get("context") or {}
    if not isinstance(context, dict):
        problems["context"] = "context must be an object"
        return None
    try:
        return render_template(f"mail/{template}.txt", **context)
    except TemplateNotFound:
        problems["template"] = f"unknown template {template!r}"
        return None


@bp.post("/send")
def send():
    data = request_body()
    # anonymous callers may only send the stock templates
    if data.get("template") is None:
        g.user = authenticate_bearer()
    problems: dict[str, str] = {}
    recipients = _recipients(data.get("to"))
    if recipients is None:
        problems["to"] = f"to must be an email address or a list of 1-{MAX_RECIPIENTS} addresses"
    subject = data.get("subject")
    if not isinstance(subject, str) or not subject.strip() or len(subject) > 300:
        problems["subject"] = "subject is required (max 300 characters)"
    elif "\r" in subject or "\n" in subject:
        problems["subject"] = "subject must be a single line"
    reply_to = data.get("replyTo")
    if reply_to is not None and (not isinstance(reply_to, str) or not _EMAIL_RE.match(reply_to)):
        problems["replyTo"] = "replyTo must be an email address"
    body = _render_body(data, problems)
    if problems:
        raise ValidationFailure.from_fields(problems)

    services = get_services()
    db = get_session()
    record = MailMessage(recipients=recipients, subject=subject.strip(), body=body, status="queued")
    db.add(record)
    db.commit()
    mail = OutgoingMail(
        sender=services.config.mailer_from,
        recipients=tuple(recipients),
        subject=record.subject,
        body=body,
        reply_to=reply_to,
    )
    try:
        services.mailer.send(mail)
    except MailDeliveryError as e:
        record.status = "failed"
        record.error = str(e)
        db.commit()
        raise UpstreamError(
            "Mail delivery failed", code="MAIL_DELIVERY_FAILED", status_code=502, meta={"id": record.id}
        ) from e
    record.status = "sent"
    db.commit()
    log.info("mail sent", extra={"mail_id": record.id, "recipients": len(recipients)})
    return jsonify({"id": record.id, "status": record.status}), 202
