"""Email templates blueprint — /api/email-templates/*

Route Map:
  GET    /api/email-templates                       — List (default first, then name)
  POST   /api/email-templates                       — Create
  GET    /api/email-templates/<id>                  — Detail
  PUT    /api/email-templates/<id>                  — Update
  DELETE /api/email-templates/<id>                  — Delete
  GET    /api/email-templates/<id>/preview?lead_id= — Render for a lead
"""

import logging

from flask import Blueprint, jsonify, request

from crm.decorators import check_api_key
from crm.extensions import db
from crm.models.email_template import EmailTemplate
from crm.schemas import TemplatePayload, load_body
from crm.services import email_service, outreach_service
from crm.services.lead_service import get_lead
from crm.services.outreach_service import get_template

email_templates_bp = Blueprint(
    "email_templates", __name__, url_prefix="/api/email-templates"
)
email_templates_bp.before_request(check_api_key)

logger = logging.getLogger(__name__)


@email_templates_bp.route("", methods=["GET"])
def list_templates():
    templates = (
        db.session.query(EmailTemplate)
        .order_by(EmailTemplate.is_default.desc(), EmailTemplate.name.asc())
        .all()
    )
    return jsonify([t.to_dict() for t in templates])


@email_templates_bp.route("", methods=["POST"])
def create_template():
    payload = load_body(TemplatePayload)
    template = EmailTemplate(**payload.model_dump())
    db.session.add(template)
    db.session.commit()
    logger.info(f"Email template created: {template.name}")
    return jsonify(template.to_dict()), 201


@email_templates_bp.route("/<template_id>", methods=["GET"])
def get_template_detail(template_id):
    return jsonify(get_template(db.session, template_id).to_dict())


@email_templates_bp.route("/<template_id>", methods=["PUT"])
def update_template(template_id):
    template = get_template(db.session, template_id)
    payload = load_body(TemplatePayload)
    for field, value in payload.model_dump().items():
        setattr(template, field, value)
    db.session.commit()
    return jsonify(template.to_dict())


@email_templates_bp.route("/<template_id>", methods=["DELETE"])
def delete_template(template_id):
    outreach_service.delete_template(db.session, template_id)
    db.session.commit()
    return jsonify({"success": True})


@email_templates_bp.route("/<template_id>/preview", methods=["GET"])
def preview_template(template_id):
    template = get_template(db.session, template_id)
    lead_id = request.args.get("lead_id")
    if not lead_id:
        return jsonify({"error": "lead_id is required"}), 400
    lead = get_lead(db.session, lead_id)

    subject, body = template.render(lead, email_service.sender_name())
    return jsonify({
        "subject": subject,
        "body": body,
        "to": lead.contact_email,
    })
