"""Email template model.

Stores reusable outreach emails that are populated with lead-specific
data before sending. A template may be bound to a cadence step; when a
lead advances to that step a ScheduledEmail is queued for
now + delay_days.

Template variables use {{variable}} syntax:
  {{dispensary_name}}     — lead's business name
  {{contact_name}}        — full contact name
  {{first_name}}          — first name only
  {{manager_name}}        — store manager
  {{city}} / {{state}}    — location
  {{current_pos_system}}  — competing product in use
  {{sender_name}}         — MAIL_FROM_NAME
"""

import uuid

from crm.extensions import db


class EmailTemplate(db.Model):
    __tablename__ = "email_templates"

    CATEGORIES = ["General", "Intro", "Follow-Up", "Proposal", "Demo"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(500), nullable=False)
    body = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(50), nullable=False, default="General")
    cadence_step = db.Column(db.Integer, nullable=True)  # 1-5 or None
    delay_days = db.Column(db.Integer, nullable=False, default=0)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def _replacements(self, lead, sender_name):
        return {
            "{{dispensary_name}}": lead.dispensary_name or "",
            "{{contact_name}}": lead.contact_name or "",
            "{{first_name}}": (lead.contact_name or "").split(" ")[0] if lead.contact_name else "",
            "{{manager_name}}": lead.manager_name or "",
            "{{city}}": lead.city or "",
            "{{state}}": lead.state or "",
            "{{current_pos_system}}": lead.current_pos_system or "",
            "{{sender_name}}": sender_name or "",
        }

    def render(self, lead, sender_name=""):
        """Return (subject, body) with template variables replaced."""
        subject = self.subject
        body = self.body
        for placeholder, value in self._replacements(lead, sender_name).items():
            subject = subject.replace(placeholder, value)
            body = body.replace(placeholder, value)
        return subject, body

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "body": self.body,
            "category": self.category,
            "cadence_step": self.cadence_step,
            "delay_days": self.delay_days,
            "is_default": self.is_default,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<EmailTemplate {self.name} ({self.category})>"
