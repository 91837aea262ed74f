"""Email blueprint — /api/email/*

Outbound email over SMTP. Every successful send is logged to the lead's
contact history. Nothing is retried.

Route Map:
  GET  /api/email/status             — Is SMTP configured?
  POST /api/email/test               — Verify the SMTP login
  POST /api/email/send               — Send one email to a lead
  POST /api/email/batch              — Send one template to many leads
  POST /api/email/process-scheduled  — Run the scheduled cadence email sweep
"""

from flask import Blueprint, current_app, jsonify

from crm.decorators import check_api_key
from crm.extensions import db, limiter
from crm.schemas import EmailBatchRequest, EmailSendRequest, load_body
from crm.services import email_service, outreach_service

email_bp = Blueprint("email", __name__, url_prefix="/api/email")
email_bp.before_request(check_api_key)


@email_bp.route("/status", methods=["GET"])
def status():
    config = current_app.config
    return jsonify({
        "configured": email_service.is_configured(),
        "from_name": config.get("MAIL_FROM_NAME"),
        "from_address": config.get("MAIL_FROM_ADDRESS") or config.get("MAIL_USERNAME"),
        "reply_to": config.get("MAIL_REPLY_TO"),
    })


@email_bp.route("/test", methods=["POST"])
@limiter.limit("5 per minute")
def test_connection():
    email_service.verify_connection()
    return jsonify({"ok": True})


@email_bp.route("/send", methods=["POST"])
@limiter.limit("30 per minute")
def send():
    body = load_body(EmailSendRequest)
    message_id, entry = outreach_service.send_to_lead(
        db.session,
        body.lead_id,
        to=body.to,
        subject=body.subject,
        body=body.body,
        template_id=body.template_id,
    )
    db.session.commit()
    return jsonify({
        "success": True,
        "message_id": message_id,
        "history_entry": entry.to_dict(),
    })


@email_bp.route("/batch", methods=["POST"])
@limiter.limit("5 per minute")
def batch():
    body = load_body(EmailBatchRequest)
    result = outreach_service.send_batch(db.session, body.template_id, body.lead_ids)
    db.session.commit()
    return jsonify(result)


@email_bp.route("/process-scheduled", methods=["POST"])
@limiter.limit("5 per minute")
def process_scheduled():
    summary = outreach_service.process_scheduled_emails(db.session)
    return jsonify(summary)
