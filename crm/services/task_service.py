"""Task service — CRUD, completion toggle, automatic follow-up reminders.

Reminder tasks (source "auto_reminder") are created for open leads that
have gone quiet for longer than their stage allows. Generation runs
whenever the task list is read and from `flask generate-reminders`.

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func

from crm.errors import NotFoundError
from crm.models.contact_history import ContactHistory
from crm.models.lead import Lead
from crm.models.task import Task
from crm.services.lead_service import get_lead, sanitize
from crm.services.scoring import days_since

logger = logging.getLogger(__name__)

# Days without any activity before a reminder is due, per open stage
REMINDER_THRESHOLDS = {
    "New Lead": 3,
    "Contacted": 5,
    "Demo Scheduled": 2,
    "Demo Completed": 3,
    "Proposal Sent": 4,
    "Negotiating": 2,
}


def get_task(session, task_id):
    task = session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def list_tasks(session, status=None, priority=None, lead_id=None, period=None, today=None):
    """Tasks ordered pending first, then by due date and time."""
    today = today or date.today()
    query = session.query(Task)
    if status in Task.STATUSES:
        query = query.filter(Task.status == status)
    if priority in Task.PRIORITIES:
        query = query.filter(Task.priority == priority)
    if lead_id:
        query = query.filter(Task.lead_id == lead_id)

    if period == "overdue":
        query = query.filter(Task.due_date < today, Task.status == "pending")
    elif period == "today":
        query = query.filter(Task.due_date == today, Task.status == "pending")
    elif period == "upcoming":
        query = query.filter(Task.due_date > today, Task.status == "pending")

    return query.order_by(
        Task.status.desc(),  # "pending" sorts after "completed" alphabetically
        Task.due_date.asc(),
        Task.due_time.is_(None),
        Task.due_time.asc(),
    ).all()


def task_stats(session, today=None):
    today = today or date.today()
    pending = session.query(Task).filter(Task.status == "pending")
    return {
        "overdue": pending.filter(Task.due_date < today).count(),
        "today": pending.filter(Task.due_date == today).count(),
        "upcoming": pending.filter(Task.due_date > today).count(),
    }


def create_task(session, payload, source="manual"):
    get_lead(session, payload.lead_id)
    task = Task(
        lead_id=payload.lead_id,
        title=sanitize(payload.title),
        description=sanitize(payload.description),
        due_date=payload.due_date,
        due_time=payload.due_time,
        priority=payload.priority,
        source=source,
    )
    session.add(task)
    session.flush()
    return task


def update_task(session, task_id, payload):
    task = get_task(session, task_id)
    task.title = sanitize(payload.title)
    task.description = sanitize(payload.description)
    task.due_date = payload.due_date
    task.due_time = payload.due_time
    task.priority = payload.priority
    session.flush()
    return task


def toggle_complete(session, task_id):
    """pending <-> completed. completed_at is set or cleared to match."""
    task = get_task(session, task_id)
    if task.status == "pending":
        task.status = "completed"
        task.completed_at = datetime.now(timezone.utc)
    else:
        task.status = "pending"
        task.completed_at = None
    session.flush()
    return task


def delete_task(session, task_id):
    task = get_task(session, task_id)
    session.delete(task)
    session.flush()


def _last_activity_map(session):
    """{lead_id: latest history timestamp of any kind}."""
    rows = (
        session.query(ContactHistory.lead_id, func.max(ContactHistory.contact_date))
        .group_by(ContactHistory.lead_id)
        .all()
    )
    return dict(rows)


def generate_reminder_tasks(session, now=None):
    """Create follow-up tasks for open leads that have gone quiet.

    A lead qualifies when the days since its latest history row (or its
    creation, if it has none) exceed REMINDER_THRESHOLDS[stage] and it
    has no pending auto_reminder task already.

    Returns:
        list[Task]: tasks created by this call.
    """
    now = now or datetime.now(timezone.utc)
    leads = session.query(Lead).filter(Lead.stage.in_(list(REMINDER_THRESHOLDS))).all()
    if not leads:
        return []

    last_activity = _last_activity_map(session)
    already_reminded = {
        lead_id for (lead_id,) in (
            session.query(Task.lead_id)
            .filter(Task.source == "auto_reminder", Task.status == "pending")
            .all()
        )
    }

    created = []
    for lead in leads:
        if lead.id in already_reminded:
            continue
        idle_days = days_since(last_activity.get(lead.id) or lead.created_at, now)
        if idle_days is None or idle_days <= REMINDER_THRESHOLDS[lead.stage]:
            continue

        task = Task(
            lead_id=lead.id,
            title=f"Follow up with {lead.dispensary_name}",
            description=f"No activity for {idle_days} days while in {lead.stage}.",
            due_date=now.date(),
            priority=lead.priority or "Medium",
            source="auto_reminder",
        )
        session.add(task)
        created.append(task)

    if created:
        session.flush()
        logger.info(f"Created {len(created)} auto-reminder task(s)")
    return created
