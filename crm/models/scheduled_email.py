"""ScheduledEmail model — a pending cadence-triggered send.

Created by lead_service.advance_cadence() when the new step has a bound
template; consumed once by outreach_service.process_scheduled_emails().
"""

import uuid

from crm.extensions import db


class ScheduledEmail(db.Model):
    __tablename__ = "scheduled_emails"

    STATUSES = ["pending", "sent", "failed", "cancelled"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lead_id = db.Column(
        db.String(36),
        db.ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    template_id = db.Column(
        db.String(36),
        db.ForeignKey("email_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    cadence_step = db.Column(db.Integer, nullable=False)
    send_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    lead = db.relationship("Lead", back_populates="scheduled_emails")
    template = db.relationship("EmailTemplate", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "template_id": self.template_id,
            "cadence_step": self.cadence_step,
            "send_at": self.send_at.isoformat() if self.send_at else None,
            "status": self.status,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error": self.error,
        }

    def __repr__(self):
        return f"<ScheduledEmail step {self.cadence_step} for {self.lead_id} ({self.status})>"
