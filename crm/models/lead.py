"""Lead model.

A prospective retail location tracked through the sales pipeline.
Pipeline: New Lead -> Contacted -> Demo Scheduled -> Demo Completed ->
Proposal Sent -> Negotiating -> Closed Won | Closed Lost

Stage and cadence changes are never written directly by routes: they go
through lead_service.set_stage / advance_cadence so the change is logged
to contact history.
"""

import uuid
from datetime import date

from sqlalchemy.orm import validates

from crm.extensions import db


class Lead(db.Model):
    __tablename__ = "leads"

    # -- Ordered pipeline stages --
    STAGES = [
        "New Lead",
        "Contacted",
        "Demo Scheduled",
        "Demo Completed",
        "Proposal Sent",
        "Negotiating",
        "Closed Won",
        "Closed Lost",
    ]
    CLOSED_STAGES = ["Closed Won", "Closed Lost"]
    PRIORITIES = ["Low", "Medium", "High"]

    # -- Outreach cadence: step number -> label --
    CADENCE_STEPS = {
        0: "Not Started",
        1: "Intro Email",
        2: "Follow-Up Call",
        3: "Value Follow-Up",
        4: "Demo Offer",
        5: "Break-Up Email",
    }

    CLOSED_WON_REASONS = [
        "Better pricing",
        "Better features",
        "Strong relationship",
        "Unhappy with current POS",
        "Other",
    ]
    CLOSED_LOST_REASONS = [
        "Price too high",
        "Went with competitor",
        "Happy with current POS",
        "Bad timing",
        "No response",
        "Other",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    contact_date = db.Column(db.Date, nullable=False, default=date.today)

    # --- Identity ---
    dispensary_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(50), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    license_number = db.Column(db.String(100), nullable=True)

    # --- Contact ---
    dispensary_number = db.Column(db.String(50), nullable=True)  # main line
    contact_name = db.Column(db.String(255), nullable=True)
    contact_position = db.Column(db.String(100), nullable=True)
    manager_name = db.Column(db.String(255), nullable=True)
    owner_name = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(50), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(500), nullable=True)

    # --- Sales ---
    current_pos_system = db.Column(db.String(100), nullable=True)
    deal_value = db.Column(db.Float, nullable=True)  # monthly, USD
    priority = db.Column(db.String(20), default="Medium", nullable=False)
    stage = db.Column(db.String(50), default="New Lead", nullable=False, index=True)
    cadence_step = db.Column(db.Integer, default=0, nullable=False)

    # --- Scheduling ---
    callback_days = db.Column(db.JSON, nullable=True)  # ["Monday", "Thursday"]
    callback_time_slots = db.Column(db.JSON, nullable=True)  # ["Morning"]
    callback_time_from = db.Column(db.String(10), nullable=True)  # "09:00"
    callback_time_to = db.Column(db.String(10), nullable=True)
    callback_date = db.Column(db.Date, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(100), nullable=True)  # manual | import | referral ...
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    history = db.relationship(
        "ContactHistory",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="ContactHistory.contact_date.desc()",
    )
    tasks = db.relationship(
        "Task",
        back_populates="lead",
        cascade="all, delete-orphan",
    )
    scheduled_emails = db.relationship(
        "ScheduledEmail",
        back_populates="lead",
        cascade="all, delete-orphan",
    )

    @validates("stage")
    def _validate_stage(self, key, value):
        if value not in self.STAGES:
            raise ValueError(
                f"Invalid stage '{value}'. Must be one of: {', '.join(self.STAGES)}"
            )
        return value

    @validates("priority")
    def _validate_priority(self, key, value):
        if value not in self.PRIORITIES:
            raise ValueError(
                f"Invalid priority '{value}'. Must be one of: {', '.join(self.PRIORITIES)}"
            )
        return value

    @validates("deal_value")
    def _validate_deal_value(self, key, value):
        if value is not None and value < 0:
            raise ValueError("Deal value cannot be negative.")
        return value

    @validates("cadence_step")
    def _validate_cadence_step(self, key, value):
        if value not in self.CADENCE_STEPS:
            raise ValueError("Cadence step must be between 0 and 5.")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "contact_date": self.contact_date.isoformat() if self.contact_date else None,
            "dispensary_name": self.dispensary_name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "license_number": self.license_number,
            "dispensary_number": self.dispensary_number,
            "contact_name": self.contact_name,
            "contact_position": self.contact_position,
            "manager_name": self.manager_name,
            "owner_name": self.owner_name,
            "contact_number": self.contact_number,
            "contact_email": self.contact_email,
            "website": self.website,
            "current_pos_system": self.current_pos_system,
            "deal_value": self.deal_value,
            "priority": self.priority,
            "stage": self.stage,
            "cadence_step": self.cadence_step,
            "cadence_label": self.CADENCE_STEPS.get(self.cadence_step),
            "callback_days": self.callback_days or [],
            "callback_time_slots": self.callback_time_slots or [],
            "callback_time_from": self.callback_time_from,
            "callback_time_to": self.callback_time_to,
            "callback_date": self.callback_date.isoformat() if self.callback_date else None,
            "notes": self.notes,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Lead {self.dispensary_name} ({self.stage})>"
