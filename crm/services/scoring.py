"""Lead scoring — a weighted sum recomputed on every read, never stored.

score = stage weight + recency weight + value weight + completeness bonus

The total is not clamped or normalized; callers label it Hot (>= 70),
Warm (>= 40) or Cold.
"""

from datetime import datetime, timezone

STAGE_WEIGHTS = {
    "New Lead": 5,
    "Contacted": 10,
    "Demo Scheduled": 15,
    "Demo Completed": 20,
    "Proposal Sent": 25,
    "Negotiating": 30,
    "Closed Won": 30,
    "Closed Lost": 0,
}
UNKNOWN_STAGE_WEIGHT = 5

# (max days since last contact, weight), checked in order
RECENCY_BUCKETS = [
    (3, 25),
    (7, 20),
    (14, 12),
    (30, 5),
]

# (max monthly deal value, weight), checked in order after the zero case
VALUE_BUCKETS = [
    (200, 8),
    (500, 14),
]
VALUE_TOP_WEIGHT = 20

COMPLETENESS_POINTS = 5

HOT_THRESHOLD = 70
WARM_THRESHOLD = 40


def stage_weight(stage):
    return STAGE_WEIGHTS.get(stage, UNKNOWN_STAGE_WEIGHT)


def recency_weight(days_since_contact):
    """None means the lead has never had a substantive contact."""
    if days_since_contact is None:
        return 0
    for max_days, weight in RECENCY_BUCKETS:
        if days_since_contact <= max_days:
            return weight
    return 0


def value_weight(deal_value):
    if not deal_value:
        return 0
    for max_value, weight in VALUE_BUCKETS:
        if deal_value <= max_value:
            return weight
    return VALUE_TOP_WEIGHT


def _filled(value):
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() not in ("", "[]")
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def completeness_bonus(lead):
    """+5 each for email, phone, manager name, callback days, callback date."""
    bonus = 0
    for value in (lead.contact_email, lead.contact_number, lead.manager_name, lead.callback_days):
        if _filled(value):
            bonus += COMPLETENESS_POINTS
    if lead.callback_date is not None:
        bonus += COMPLETENESS_POINTS
    return bonus


def days_since(moment, now=None):
    """Whole days between moment and now. Naive datetimes are treated as UTC."""
    if moment is None:
        return None
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max((now - moment).days, 0)


def score_breakdown(lead, last_contact_at=None, now=None):
    """Return each weight plus the total for a lead.

    Args:
        lead: Lead instance (only attributes are read).
        last_contact_at: datetime of the latest substantive contact, or None.
        now: reference time, defaults to the current UTC time.
    """
    days = days_since(last_contact_at, now)
    parts = {
        "stage": stage_weight(lead.stage),
        "recency": recency_weight(days),
        "value": value_weight(lead.deal_value),
        "completeness": completeness_bonus(lead),
    }
    parts["total"] = sum(parts.values())
    parts["days_since_contact"] = days
    return parts


def score_lead(lead, last_contact_at=None, now=None):
    return score_breakdown(lead, last_contact_at, now)["total"]


def temperature(score):
    if score >= HOT_THRESHOLD:
        return "Hot"
    if score >= WARM_THRESHOLD:
        return "Warm"
    return "Cold"
