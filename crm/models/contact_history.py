"""ContactHistory model — append-only interaction and transition log.

Each row is either a real interaction (entry_type "contact" or "email")
or a system-logged transition ("stage_change", "cadence_advance",
"merge"). Transitions keep the human-readable notes string, e.g.

    Stage changed from "Contacted" to "Demo Scheduled"
    Cadence advanced to Step 2: Follow-Up Call

but analytics read the structured from_stage / to_stage / cadence_step
columns, never the notes text.
"""

import uuid
from datetime import datetime, timezone

from crm.extensions import db


class ContactHistory(db.Model):
    __tablename__ = "contact_history"

    METHODS = ["Phone", "Email", "In-Person", "Text", "Other"]
    ENTRY_TYPES = ["contact", "email", "stage_change", "cadence_advance", "merge"]
    # Rows written by the system rather than by a person talking to the lead
    SYSTEM_ENTRY_TYPES = ["stage_change", "cadence_advance", "merge"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lead_id = db.Column(
        db.String(36),
        db.ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_date = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    contact_method = db.Column(db.String(20), nullable=False, default="Phone")
    contact_person = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    outcome = db.Column(db.String(255), nullable=True)
    next_callback = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Email linkage ---
    email_subject = db.Column(db.String(500), nullable=True)
    email_template_id = db.Column(
        db.String(36),
        db.ForeignKey("email_templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    # --- Structured transition ---
    entry_type = db.Column(db.String(30), nullable=False, default="contact")
    from_stage = db.Column(db.String(50), nullable=True)
    to_stage = db.Column(db.String(50), nullable=True)
    cadence_step = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    lead = db.relationship("Lead", back_populates="history")

    def to_dict(self):
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "contact_date": self.contact_date.isoformat() if self.contact_date else None,
            "contact_method": self.contact_method,
            "contact_person": self.contact_person,
            "notes": self.notes,
            "outcome": self.outcome,
            "next_callback": self.next_callback.isoformat() if self.next_callback else None,
            "email_subject": self.email_subject,
            "email_template_id": self.email_template_id,
            "entry_type": self.entry_type,
            "from_stage": self.from_stage,
            "to_stage": self.to_stage,
            "cadence_step": self.cadence_step,
        }

    def __repr__(self):
        return f"<ContactHistory {self.entry_type} on {self.lead_id}>"
