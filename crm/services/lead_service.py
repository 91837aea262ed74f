"""Lead service — CRUD, stage and cadence transitions, contact history.

Every stage or cadence change writes a ContactHistory row so history is
the complete audit trail of pipeline movement. The notes text of those
rows is fixed, e.g.

    Stage changed from "Contacted" to "Demo Scheduled"
    Cadence advanced to Step 2: Follow-Up Call

Functions take the SQLAlchemy session as their first argument and flush
but do NOT commit; the caller commits.
"""

import html
import logging
from datetime import date, datetime, timedelta, timezone

import bleach
from pydantic import ValidationError
from sqlalchemy import case, func

from crm.errors import NotFoundError
from crm.models.contact_history import ContactHistory
from crm.models.email_template import EmailTemplate
from crm.models.lead import Lead
from crm.models.scheduled_email import ScheduledEmail
from crm.schemas import LeadPayload, error_list
from crm.services import scoring

logger = logging.getLogger(__name__)

# Columns an update body replaces. stage is routed through set_stage so
# the change is logged; source is set once at creation.
EDITABLE_FIELDS = [
    name for name in LeadPayload.model_fields if name not in ("stage", "source")
]
TEXT_FIELDS = ["notes"]

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def sanitize(text):
    """Strip all HTML tags from user input.

    bleach escapes &, < and > for HTML output; responses here are JSON, so
    the entities are decoded back to plain text.
    """
    if text is None:
        return text
    return html.unescape(bleach.clean(text, tags=[], strip=True)).strip()


def _now():
    return datetime.now(timezone.utc)


def stage_change_note(old_stage, new_stage):
    return f'Stage changed from "{old_stage}" to "{new_stage}"'


def cadence_note(step):
    return f"Cadence advanced to Step {step}: {Lead.CADENCE_STEPS[step]}"


def get_lead(session, lead_id):
    """Return the lead or raise NotFoundError."""
    lead = session.get(Lead, lead_id)
    if lead is None:
        raise NotFoundError("Lead", lead_id)
    return lead


# ─── Create / update / delete ───────────────────────────────────

def create_lead(session, payload, source=None):
    """Insert a lead from a validated LeadPayload.

    Args:
        session: SQLAlchemy session.
        payload: LeadPayload instance.
        source: Overrides payload.source when given (bulk import tag).

    Returns:
        The created Lead (flushed, has an id).
    """
    data = payload.model_dump(exclude_none=True)
    if source:
        data["source"] = source
    for field in TEXT_FIELDS:
        if field in data:
            data[field] = sanitize(data[field])

    lead = Lead(**data)
    session.add(lead)
    session.flush()
    logger.info(f"Lead created: {lead.dispensary_name} ({lead.id})")
    return lead


def update_lead(session, lead_id, payload, reason=None):
    """Replace a lead's editable fields. A changed stage is routed through set_stage."""
    lead = get_lead(session, lead_id)
    data = payload.model_dump()

    for field in EDITABLE_FIELDS:
        value = data.get(field)
        if field in ("priority", "contact_date") and value is None:
            continue  # keep existing
        if field in TEXT_FIELDS:
            value = sanitize(value)
        setattr(lead, field, value)

    lead.updated_at = _now()
    session.flush()

    if data.get("stage") and data["stage"] != lead.stage:
        set_stage(session, lead_id, data["stage"], reason=reason)
    return lead


def delete_lead(session, lead_id):
    """Delete a lead; history, tasks, and scheduled emails cascade."""
    lead = get_lead(session, lead_id)
    session.delete(lead)
    session.flush()
    logger.info(f"Lead deleted: {lead_id}")


# ─── Transitions ────────────────────────────────────────────────

def set_stage(session, lead_id, new_stage, reason=None):
    """Move a lead to new_stage, logging the change.

    No history row is written when the stage does not actually change.
    The outcome is the close reason for Closed Won/Lost when one is
    given, else "Stage: <new>".

    Returns:
        (lead, history_entry_or_None)

    Raises:
        ValueError: new_stage is not a pipeline stage.
        NotFoundError: lead does not exist.
    """
    if new_stage not in Lead.STAGES:
        raise ValueError(
            f"Invalid stage '{new_stage}'. Must be one of: {', '.join(Lead.STAGES)}"
        )
    lead = get_lead(session, lead_id)
    old_stage = lead.stage
    if old_stage == new_stage:
        return lead, None

    lead.stage = new_stage
    lead.updated_at = _now()

    reason = sanitize(reason)
    if new_stage in Lead.CLOSED_STAGES and reason:
        outcome = reason
    else:
        outcome = f"Stage: {new_stage}"

    entry = ContactHistory(
        lead_id=lead.id,
        contact_method="Other",
        notes=stage_change_note(old_stage, new_stage),
        outcome=outcome,
        entry_type="stage_change",
        from_stage=old_stage,
        to_stage=new_stage,
    )
    session.add(entry)
    session.flush()
    logger.info(f"Lead {lead.id} stage: {old_stage} -> {new_stage}")
    return lead, entry


def bulk_set_stage(session, lead_ids, new_stage, reason=None):
    """Move many leads at once. All ids must exist or nothing is changed.

    Returns:
        int: number of leads whose stage actually changed.
    """
    unique_ids = list(dict.fromkeys(lead_ids))
    found = {
        lead.id for lead in session.query(Lead).filter(Lead.id.in_(unique_ids)).all()
    }
    missing = [lid for lid in unique_ids if lid not in found]
    if missing:
        raise NotFoundError("Lead", missing[0])

    changed = 0
    for lead_id in unique_ids:
        _, entry = set_stage(session, lead_id, new_stage, reason=reason)
        if entry is not None:
            changed += 1
    return changed


def template_for_step(session, step):
    """The template bound to a cadence step, default templates first."""
    return (
        session.query(EmailTemplate)
        .filter(EmailTemplate.cadence_step == step)
        .order_by(EmailTemplate.is_default.desc(), EmailTemplate.created_at.asc())
        .first()
    )


def advance_cadence(session, lead_id, step, now=None):
    """Set a lead's outreach cadence step.

    Logs "Cadence advanced to Step <n>: <label>", cancels pending emails
    queued for other steps, and queues the template bound to the new step
    (if any) for now + template.delay_days. Setting the current step
    again is a no-op.

    Returns:
        (lead, history_entry_or_None, scheduled_email_or_None)
    """
    if step not in Lead.CADENCE_STEPS:
        raise ValueError("Cadence step must be between 0 and 5.")
    lead = get_lead(session, lead_id)
    if lead.cadence_step == step:
        return lead, None, None

    now = now or _now()
    lead.cadence_step = step
    lead.updated_at = now

    entry = ContactHistory(
        lead_id=lead.id,
        contact_date=now,
        contact_method="Other",
        notes=cadence_note(step),
        outcome=f"Cadence: Step {step}",
        entry_type="cadence_advance",
        cadence_step=step,
    )
    session.add(entry)

    (
        session.query(ScheduledEmail)
        .filter(
            ScheduledEmail.lead_id == lead.id,
            ScheduledEmail.status == "pending",
            ScheduledEmail.cadence_step != step,
        )
        .update({"status": "cancelled"}, synchronize_session="fetch")
    )

    scheduled = None
    template = template_for_step(session, step)
    if template is not None:
        scheduled = ScheduledEmail(
            lead_id=lead.id,
            template_id=template.id,
            cadence_step=step,
            send_at=now + timedelta(days=template.delay_days or 0),
        )
        session.add(scheduled)

    session.flush()
    logger.info(
        f"Lead {lead.id} cadence -> step {step}"
        + (f", scheduled '{template.name}'" if template is not None else "")
    )
    return lead, entry, scheduled


# ─── Contact history ────────────────────────────────────────────

def add_history(session, lead_id, payload):
    """Log a manual interaction. next_callback also sets the lead's callback_date."""
    lead = get_lead(session, lead_id)
    entry = ContactHistory(
        lead_id=lead.id,
        contact_method=payload.contact_method,
        contact_person=sanitize(payload.contact_person),
        notes=sanitize(payload.notes),
        outcome=sanitize(payload.outcome),
        next_callback=payload.next_callback,
        entry_type="email" if payload.contact_method == "Email" else "contact",
    )
    session.add(entry)
    if payload.next_callback:
        lead.callback_date = payload.next_callback.date()
    lead.updated_at = _now()
    session.flush()
    return entry


def list_history(session, lead_id):
    get_lead(session, lead_id)
    return (
        session.query(ContactHistory)
        .filter_by(lead_id=lead_id)
        .order_by(ContactHistory.contact_date.desc())
        .all()
    )


def last_contact_map(session, lead_ids=None):
    """{lead_id: latest substantive contact datetime}.

    System-logged rows (stage changes, cadence advances, merges) are not
    contact with the lead and are ignored.
    """
    query = (
        session.query(ContactHistory.lead_id, func.max(ContactHistory.contact_date))
        .filter(ContactHistory.entry_type.notin_(ContactHistory.SYSTEM_ENTRY_TYPES))
        .group_by(ContactHistory.lead_id)
    )
    if lead_ids is not None:
        query = query.filter(ContactHistory.lead_id.in_(list(lead_ids)))
    return dict(query.all())


# ─── Reads ──────────────────────────────────────────────────────

SORT_COLUMNS = ["contact_date", "dispensary_name", "created_at", "updated_at", "priority", "score"]
PRIORITY_RANK = {"High": 3, "Medium": 2, "Low": 1}


def scored_dict(lead, last_contact_at, now=None):
    data = lead.to_dict()
    breakdown = scoring.score_breakdown(lead, last_contact_at, now)
    data["score"] = breakdown["total"]
    data["temperature"] = scoring.temperature(breakdown["total"])
    data["last_contact_at"] = last_contact_at.isoformat() if last_contact_at else None
    return data


def list_leads(session, search=None, priority=None, stage=None, sort="updated_at", order="DESC"):
    """Filtered lead dicts, each carrying its current score."""
    query = session.query(Lead)
    if search:
        like = f"%{search}%"
        query = query.filter(
            Lead.dispensary_name.ilike(like)
            | Lead.contact_name.ilike(like)
            | Lead.manager_name.ilike(like)
            | Lead.owner_name.ilike(like)
            | Lead.address.ilike(like)
            | Lead.city.ilike(like)
        )
    if priority in Lead.PRIORITIES:
        query = query.filter(Lead.priority == priority)
    if stage in Lead.STAGES:
        query = query.filter(Lead.stage == stage)

    sort = sort if sort in SORT_COLUMNS else "updated_at"
    descending = str(order).upper() != "ASC"

    if sort == "priority":
        rank = case(PRIORITY_RANK, value=Lead.priority, else_=0)
        query = query.order_by(rank.desc() if descending else rank.asc())
    elif sort != "score":
        column = getattr(Lead, sort)
        query = query.order_by(column.desc() if descending else column.asc())

    leads = query.all()
    contacts = last_contact_map(session, [lead.id for lead in leads])
    now = _now()
    rows = [scored_dict(lead, contacts.get(lead.id), now) for lead in leads]
    if sort == "score":
        rows.sort(key=lambda r: r["score"], reverse=descending)
    return rows


def lead_detail(session, lead_id):
    """Lead dict plus history, tasks, pending emails, and score breakdown."""
    lead = get_lead(session, lead_id)
    last_contact = last_contact_map(session, [lead.id]).get(lead.id)
    data = scored_dict(lead, last_contact)
    data["score_breakdown"] = scoring.score_breakdown(lead, last_contact)
    data["contact_history"] = [h.to_dict() for h in list_history(session, lead_id)]
    data["tasks"] = [t.to_dict() for t in lead.tasks]
    data["scheduled_emails"] = [s.to_dict() for s in lead.scheduled_emails]
    return data


def _has_callback_days(lead):
    return bool(lead.callback_days)


def callbacks_today(session, today=None):
    """Leads whose callback days include today's weekday, or whose callback_date is today."""
    today = today or date.today()
    weekday = WEEKDAYS[today.weekday()]
    leads = (
        session.query(Lead)
        .filter((Lead.callback_days.isnot(None)) | (Lead.callback_date == today))
        .order_by(Lead.dispensary_name.asc())
        .all()
    )
    return [
        lead for lead in leads
        if weekday in (lead.callback_days or []) or lead.callback_date == today
    ]


def callbacks_upcoming(session):
    """Leads with any callback scheduling (days or a date)."""
    leads = (
        session.query(Lead)
        .filter((Lead.callback_days.isnot(None)) | (Lead.callback_date.isnot(None)))
        .order_by(Lead.dispensary_name.asc())
        .all()
    )
    return [lead for lead in leads if _has_callback_days(lead) or lead.callback_date]


def dashboard_stats(session, today=None):
    today = today or date.today()
    week_ago = _now() - timedelta(days=7)
    open_value = (
        session.query(func.coalesce(func.sum(Lead.deal_value), 0))
        .filter(Lead.stage.notin_(Lead.CLOSED_STAGES))
        .scalar()
    )
    return {
        "total": session.query(Lead).count(),
        "today_callbacks": len(callbacks_today(session, today)),
        "scheduled_callbacks": len(callbacks_upcoming(session)),
        "new_this_week": session.query(Lead).filter(Lead.created_at >= week_ago).count(),
        "open_pipeline_value": float(open_value or 0),
    }


# ─── Bulk import ────────────────────────────────────────────────

def bulk_import(session, rows, source=None):
    """Insert many leads with row-level atomicity.

    Each row is validated and inserted inside its own SAVEPOINT. A row
    that fails is rolled back alone and reported; every other row stays
    in the outer transaction, which the caller commits.

    Returns:
        dict: {"created", "failed", "ids", "errors": [{"row", "error"}]}
    """
    created_ids = []
    errors = []
    for index, row in enumerate(rows):
        try:
            payload = LeadPayload.model_validate(row)
        except ValidationError as e:
            messages = "; ".join(
                f"{err['field']}: {err['message']}" if err["field"] else err["message"]
                for err in error_list(e)
            )
            errors.append({"row": index + 1, "error": messages})
            continue

        try:
            with session.begin_nested():
                lead = create_lead(session, payload, source=source or payload.source or "import")
            created_ids.append(lead.id)
        except Exception as e:
            logger.warning(f"Import row {index + 1} failed: {e}")
            errors.append({"row": index + 1, "error": str(e)})

    logger.info(f"Bulk import: {len(created_ids)} created, {len(errors)} failed")
    return {
        "created": len(created_ids),
        "failed": len(errors),
        "ids": created_ids,
        "errors": errors,
    }
