"""Pipeline analytics.

Reads the structured transition columns on ContactHistory
(entry_type / from_stage / to_stage) rather than parsing notes text.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone

from sqlalchemy import func

from crm.models.contact_history import ContactHistory
from crm.models.lead import Lead
from crm.services.lead_service import last_contact_map
from crm.services.scoring import days_since

WEEKS_SHOWN = 12


def _utc(moment):
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def funnel(session):
    counts = dict(
        session.query(Lead.stage, func.count(Lead.id)).group_by(Lead.stage).all()
    )
    return [{"stage": stage, "count": counts.get(stage, 0)} for stage in Lead.STAGES]


def avg_time_in_stage(session):
    """Average days a lead spent in each stage before leaving it.

    Time in a stage runs from the previous transition (or lead creation)
    to the stage_change row that moved the lead out of it.
    """
    rows = (
        session.query(ContactHistory, Lead.created_at)
        .join(Lead, Lead.id == ContactHistory.lead_id)
        .filter(ContactHistory.entry_type == "stage_change")
        .order_by(ContactHistory.lead_id, ContactHistory.contact_date.asc())
        .all()
    )
    durations = defaultdict(list)
    entered_at = {}
    for entry, created_at in rows:
        start = entered_at.get(entry.lead_id, _utc(created_at))
        end = _utc(entry.contact_date)
        if start is not None and end is not None and entry.from_stage:
            durations[entry.from_stage].append(max((end - start).total_seconds(), 0) / 86400)
        entered_at[entry.lead_id] = end

    return [
        {
            "stage": stage,
            "avg_days": round(sum(durations[stage]) / len(durations[stage]), 1),
            "transitions": len(durations[stage]),
        }
        for stage in Lead.STAGES
        if durations.get(stage)
    ]


def close_reasons(session):
    """Counts of close reasons on transitions into Closed Won / Closed Lost."""
    rows = (
        session.query(ContactHistory.to_stage, ContactHistory.outcome, func.count(ContactHistory.id))
        .filter(
            ContactHistory.entry_type == "stage_change",
            ContactHistory.to_stage.in_(Lead.CLOSED_STAGES),
        )
        .group_by(ContactHistory.to_stage, ContactHistory.outcome)
        .all()
    )
    result = {"won": [], "lost": []}
    for to_stage, outcome, count in rows:
        reason = outcome if outcome and outcome != f"Stage: {to_stage}" else "No reason given"
        key = "won" if to_stage == "Closed Won" else "lost"
        result[key].append({"reason": reason, "count": count})
    for key in result:
        result[key].sort(key=lambda r: (-r["count"], r["reason"]))
    return result


def _group_count(session, column, label):
    rows = (
        session.query(column, func.count(Lead.id))
        .group_by(column)
        .order_by(func.count(Lead.id).desc())
        .all()
    )
    return [{label: value or "Unknown", "count": count} for value, count in rows]


def _week_start(moment):
    day = moment.date()
    return (day - timedelta(days=day.weekday())).isoformat()


def weekly_counts(session, now=None):
    """New leads and Closed Won transitions per week (Monday start)."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(weeks=WEEKS_SHOWN)

    new_leads = defaultdict(int)
    for (created_at,) in session.query(Lead.created_at).filter(Lead.created_at >= since).all():
        if created_at is not None:
            new_leads[_week_start(created_at)] += 1

    closed_won = defaultdict(int)
    won_rows = (
        session.query(ContactHistory.contact_date)
        .filter(
            ContactHistory.entry_type == "stage_change",
            ContactHistory.to_stage == "Closed Won",
            ContactHistory.contact_date >= since,
        )
        .all()
    )
    for (moment,) in won_rows:
        closed_won[_week_start(moment)] += 1

    return {
        "weekly_new_leads": [{"week": w, "count": c} for w, c in sorted(new_leads.items())],
        "weekly_closed_won": [{"week": w, "count": c} for w, c in sorted(closed_won.items())],
    }


def stale_leads(session, stale_days, now=None):
    """Open leads with no substantive contact for at least stale_days."""
    now = now or datetime.now(timezone.utc)
    leads = session.query(Lead).filter(Lead.stage.notin_(Lead.CLOSED_STAGES)).all()
    contacts = last_contact_map(session, [lead.id for lead in leads])

    stale = []
    for lead in leads:
        last = contacts.get(lead.id)
        idle = days_since(last or lead.created_at, now)
        if idle is not None and idle >= stale_days:
            stale.append({
                "id": lead.id,
                "dispensary_name": lead.dispensary_name,
                "stage": lead.stage,
                "last_contact_at": _utc(last).isoformat() if last else None,
                "days_idle": idle,
            })
    stale.sort(key=lambda s: -s["days_idle"])
    return stale


def pipeline_analytics(session, stale_days=14, now=None):
    data = {
        "funnel": funnel(session),
        "avg_time_in_stage": avg_time_in_stage(session),
        "close_reasons": close_reasons(session),
        "leads_by_source": _group_count(session, Lead.source, "source"),
        "leads_by_pos": _group_count(session, Lead.current_pos_system, "pos"),
        "leads_by_state": _group_count(session, Lead.state, "state"),
        "stale_leads": stale_leads(session, stale_days, now),
    }
    data.update(weekly_counts(session, now))
    return data
