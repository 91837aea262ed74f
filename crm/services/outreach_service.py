"""Outreach service — email sends that are logged to contact history.

- send_to_lead: one email, logged as an Email history row.
- send_batch: one template to many leads, per-lead results.
- process_scheduled_emails: the sweep that sends due cadence emails.
  Called from `flask send-scheduled-emails` on a cron schedule and from
  POST /api/email/process-scheduled.

Nothing here retries: a failed send is reported once and left failed.
"""

import logging
from datetime import datetime, timezone

import click

from crm.errors import EmailNotConfiguredError, EmailSendError, NotFoundError
from crm.models.contact_history import ContactHistory
from crm.models.email_template import EmailTemplate
from crm.models.lead import Lead
from crm.models.scheduled_email import ScheduledEmail
from crm.services import email_service
from crm.services.lead_service import get_lead

logger = logging.getLogger(__name__)


def get_template(session, template_id):
    template = session.get(EmailTemplate, template_id)
    if template is None:
        raise NotFoundError("Template", template_id)
    return template


def delete_template(session, template_id):
    """Delete a template and its queued emails. Logged sends keep their history row."""
    template = get_template(session, template_id)
    (
        session.query(ScheduledEmail)
        .filter(ScheduledEmail.template_id == template_id)
        .delete(synchronize_session=False)
    )
    (
        session.query(ContactHistory)
        .filter(ContactHistory.email_template_id == template_id)
        .update({"email_template_id": None}, synchronize_session=False)
    )
    session.delete(template)
    session.flush()
    logger.info(f"Email template deleted: {template_id}")


def _log_email(session, lead, subject, body, outcome, template_id=None):
    entry = ContactHistory(
        lead_id=lead.id,
        contact_method="Email",
        notes=body,
        outcome=outcome,
        email_subject=subject,
        email_template_id=template_id,
        entry_type="email",
    )
    session.add(entry)
    lead.updated_at = datetime.now(timezone.utc)
    session.flush()
    return entry


def send_to_lead(session, lead_id, to, subject, body, template_id=None):
    """Send one email and log it on the lead.

    Returns:
        (message_id, history_entry)

    Raises:
        NotFoundError, EmailNotConfiguredError, EmailSendError
    """
    lead = get_lead(session, lead_id)
    template = get_template(session, template_id) if template_id else None

    message_id = email_service.send_email(to=to, subject=subject, text=body)

    outcome = (
        f"Email sent (template: {template.name})" if template else "Email sent"
    )
    entry = _log_email(session, lead, subject, body, outcome, template.id if template else None)
    return message_id, entry


def send_batch(session, template_id, lead_ids):
    """Render one template per lead and send each.

    Per-lead failures (unknown lead, no email on file, SMTP failure) are
    collected; the batch carries on.

    Returns:
        dict: {"sent": n, "failed": n, "results": [{"lead_id", "ok", "error"?}]}

    Raises:
        NotFoundError: the template does not exist.
        EmailNotConfiguredError: before anything is attempted.
    """
    template = get_template(session, template_id)
    if not email_service.is_configured():
        raise EmailNotConfiguredError("SMTP is not configured.")

    results = []
    for lead_id in dict.fromkeys(lead_ids):
        lead = session.get(Lead, lead_id)
        if lead is None:
            results.append({"lead_id": lead_id, "ok": False, "error": "Lead not found"})
            continue
        if not lead.contact_email:
            results.append({"lead_id": lead_id, "ok": False, "error": "Lead has no email address"})
            continue

        subject, body = template.render(lead, email_service.sender_name())
        try:
            email_service.send_email(to=lead.contact_email, subject=subject, text=body)
        except EmailSendError as e:
            results.append({"lead_id": lead_id, "ok": False, "error": str(e)})
            continue

        _log_email(
            session, lead, subject, body,
            f"Email sent (template: {template.name})", template.id,
        )
        results.append({"lead_id": lead_id, "ok": True})

    sent = sum(1 for r in results if r["ok"])
    logger.info(f"Batch '{template.name}': {sent} sent, {len(results) - sent} failed")
    return {"sent": sent, "failed": len(results) - sent, "results": results}


def due_scheduled_emails(session, now=None):
    now = now or datetime.now(timezone.utc)
    return (
        session.query(ScheduledEmail)
        .filter(ScheduledEmail.status == "pending", ScheduledEmail.send_at <= now)
        .order_by(ScheduledEmail.send_at.asc())
        .all()
    )


def process_scheduled_emails(session, now=None, dry_run=False, echo=False):
    """Send every pending ScheduledEmail whose send_at has passed.

    Each email is committed on its own: sent rows become "sent" with a
    history entry, failures become "failed" with the error text.

    Args:
        session: SQLAlchemy session. This function commits.
        now: reference time (defaults to current UTC time).
        dry_run: report what would be sent without sending or writing.
        echo: print progress with click.echo (CLI use).

    Returns:
        dict: {"due", "sent", "failed"}
    """
    def say(message):
        if echo:
            click.echo(message)

    due = due_scheduled_emails(session, now)
    summary = {"due": len(due), "sent": 0, "failed": 0}

    if dry_run:
        say("[DRY RUN] No emails will actually be sent.\n")
    say(f"Found {len(due)} scheduled email(s) due.")

    if due and not dry_run and not email_service.is_configured():
        logger.warning("Scheduled emails not sent: SMTP is not configured.")
        say("SMTP is not configured; leaving emails pending.")
        return summary

    for scheduled in due:
        lead = scheduled.lead
        template = scheduled.template
        say(f"── {lead.dispensary_name} (step {scheduled.cadence_step}: {template.name}) ──")

        if dry_run:
            say(f"   WOULD SEND → {lead.contact_email or '(no email)'}")
            continue

        try:
            if not lead.contact_email:
                raise EmailSendError("Lead has no email address")
            subject, body = template.render(lead, email_service.sender_name())
            email_service.send_email(to=lead.contact_email, subject=subject, text=body)

            _log_email(
                session, lead, subject, body,
                f"Cadence email sent (template: {template.name})", template.id,
            )
            scheduled.status = "sent"
            scheduled.sent_at = datetime.now(timezone.utc)
            session.commit()
            summary["sent"] += 1
            say("   ✓ Sent and logged.")

        except EmailSendError as e:
            session.rollback()
            scheduled.status = "failed"
            scheduled.error = str(e)
            session.commit()
            summary["failed"] += 1
            logger.warning(f"Scheduled email {scheduled.id} failed: {e}")
            say(f"   ✗ FAILED: {e}")

    say(f"{'[DRY RUN] ' if dry_run else ''}Done: {summary['sent']} sent, {summary['failed']} failed.")
    return summary
