"""Task model — a to-do tied to one lead.

source is "manual" for user-created tasks and "auto_reminder" for tasks
created by task_service.generate_reminder_tasks().
"""

import uuid

from crm.extensions import db


class Task(db.Model):
    __tablename__ = "tasks"

    STATUSES = ["pending", "completed"]
    PRIORITIES = ["Low", "Medium", "High"]
    SOURCES = ["manual", "auto_reminder"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lead_id = db.Column(
        db.String(36),
        db.ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=False)
    due_time = db.Column(db.String(10), nullable=True)  # "14:30"
    priority = db.Column(db.String(20), nullable=False, default="Medium")
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    source = db.Column(db.String(30), nullable=False, default="manual")
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    lead = db.relationship("Lead", back_populates="tasks")

    def to_dict(self):
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "dispensary_name": self.lead.dispensary_name if self.lead else None,
            "title": self.title,
            "description": self.description,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "due_time": self.due_time,
            "priority": self.priority,
            "status": self.status,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Task {self.title} ({self.status})>"
